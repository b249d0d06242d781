"""
Status vocabularies shared by the handlers.

``request_status`` on ``services`` drives the booking workflow; the
lowercase ``status`` column is what the dashboards display.  Both are
plain strings in the store, so membership checks go through the sets
defined here.
"""

# services.request_status
NEW = "NEW"
QUOTED = "QUOTED"
PAYMENT_PENDING = "PAYMENT_PENDING"
PAID = "PAID"
DISPATCHING = "DISPATCHING"
EN_ROUTE = "EN_ROUTE"
ARRIVED = "ARRIVED"
IN_SERVICE = "IN_SERVICE"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"
EXPIRED = "EXPIRED"

NON_CANCELLABLE_STATUSES = frozenset({COMPLETED, CANCELLED, EXPIRED})
PAYABLE_STATUSES = frozenset({NEW, QUOTED, PAYMENT_PENDING})

# Share of the paid amount returned when a service is cancelled in a
# given state.  States not listed get no automatic refund.
REFUND_RULES = {
    NEW: 1.0,
    QUOTED: 1.0,
    PAYMENT_PENDING: 1.0,
    PAID: 1.0,
    DISPATCHING: 1.0,
    EN_ROUTE: 0.5,
    ARRIVED: 0.0,
    IN_SERVICE: 0.0,
}

# dispatch.status
ASSIGNED = "ASSIGNED"
DISPATCH_STATUSES = frozenset({ASSIGNED, EN_ROUTE, ARRIVED, COMPLETED, CANCELLED})

# transactions.payment_status
PAYMENT_STATUS_PENDING = "PENDING"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_FAILED = "FAILED"
PAYMENT_STATUS_REFUND_PENDING = "REFUND_PENDING"
PAYMENT_STATUS_REFUNDED = "REFUNDED"
REFUNDABLE_PAYMENT_STATUSES = frozenset({PAYMENT_STATUS_PAID, PAYMENT_STATUS_REFUND_PENDING})

# services.status (dashboard view)
SERVICE_PENDING = "pending"
SERVICE_COMPLETED = "completed"
SERVICE_CANCELLED = "cancelled"

# Actor types recorded in the event log
ACTOR_SYSTEM = "system"
ACTOR_CUSTOMER = "customer"
ACTOR_DRIVER = "driver"
