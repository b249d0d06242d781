"""
SQLite database integration and simple migration system.

This module provides functions for obtaining a database connection
(``get_connection``), applying migrations on application start
(``init_db``) and small helpers shared by the services (``new_id``,
``now_timestamp``).  The table layout mirrors the managed store used by
the web front‑end: services, dispatch, transactions, providers, drivers,
the event log and the pricing catalog.

The migration mechanism stores applied migration versions in the
``migrations`` table and executes new migrations in order.
"""

import json
import os
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, Optional

from .config import settings


# Same layout SQLite uses for CURRENT_TIMESTAMP, so values written from
# Python and defaults written by SQLite compare correctly as strings.
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


def get_database_path() -> str:
    """Compute the path to the SQLite database file.

    If ``settings.database_url`` is an absolute path, use it directly.
    Otherwise resolve it relative to the project root.
    """
    db_url = settings.database_url
    if os.path.isabs(db_url):
        return db_url
    base_dir = Path(__file__).resolve().parent.parent.parent  # gogrua_api/
    return str((base_dir / db_url).resolve())


def get_connection() -> sqlite3.Connection:
    """Create and return a new SQLite connection.

    Rows are returned as ``sqlite3.Row`` so columns can be read by name.
    Foreign key enforcement is switched on for the connection.
    """
    conn = sqlite3.connect(get_database_path())
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_cursor() -> Iterator[sqlite3.Cursor]:
    """Context manager that yields a cursor and closes the connection on exit."""
    conn = get_connection()
    try:
        yield conn.cursor()
        conn.commit()
    finally:
        conn.close()


def new_id() -> str:
    """Return a new primary key for domain rows."""
    return str(uuid.uuid4())


def now_timestamp(moment: Optional[datetime] = None) -> str:
    """Format ``moment`` (default: now, UTC) the way the tables store it."""
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime(TIMESTAMP_FORMAT)


def row_to_dict(row: Optional[sqlite3.Row], json_columns: tuple = ()) -> Optional[Dict[str, Any]]:
    """Convert a row to a plain dict, decoding the given JSON text columns."""
    if row is None:
        return None
    data = dict(row)
    for column in json_columns:
        raw = data.get(column)
        if isinstance(raw, str):
            try:
                data[column] = json.loads(raw)
            except json.JSONDecodeError:
                pass
    return data


# Outbound webhooks the handlers know how to fire.  They are seeded
# inactive and without a URL; operators enable them per environment.
KNOWN_WEBHOOKS = (
    "dispatch_status_updated",
    "payment_completed",
    "refund_completed",
    "refund_pending",
    "service_cancelled",
)


def init_db() -> None:
    """Initialise the database and apply pending migrations.

    Creates the ``migrations`` table if it does not exist, checks the
    current schema version, and applies any new migrations defined in
    the ``migrations`` list.  If you add a new migration, append it
    with an incremented version number.
    """
    migrations: list[tuple[int, str]] = [
        # Migration 1: Initial schema
        (
            1,
            """
            CREATE TABLE IF NOT EXISTS providers (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                zone TEXT,
                phone TEXT,
                is_active INTEGER NOT NULL DEFAULT 1,
                is_approved INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS drivers (
                id TEXT PRIMARY KEY,
                provider_id TEXT,
                full_name TEXT,
                phone TEXT,
                vehicle_type TEXT,
                current_lat REAL,
                current_lng REAL,
                is_available INTEGER NOT NULL DEFAULT 1,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(provider_id) REFERENCES providers(id)
            );

            CREATE TABLE IF NOT EXISTS services (
                id TEXT PRIMARY KEY,
                user_id TEXT,
                client_name TEXT,
                client_phone TEXT,
                vehicle_type TEXT,
                origin_address TEXT,
                origin_lat REAL,
                origin_lng REAL,
                destination_address TEXT,
                destination_lat REAL,
                destination_lng REAL,
                status TEXT NOT NULL DEFAULT 'pending',
                request_status TEXT DEFAULT 'NEW',
                estimated_price REAL,
                quote_min REAL,
                quote_max REAL,
                quote_final REAL,
                provider_id TEXT,
                driver_id TEXT,
                eta_minutes INTEGER,
                started_at TIMESTAMP,
                completed_at TIMESTAMP,
                cancelled_at TIMESTAMP,
                cancellation_reason TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(provider_id) REFERENCES providers(id),
                FOREIGN KEY(driver_id) REFERENCES drivers(id)
            );

            CREATE TABLE IF NOT EXISTS dispatch (
                id TEXT PRIMARY KEY,
                request_id TEXT NOT NULL,
                provider_id TEXT,
                driver_id TEXT,
                status TEXT NOT NULL DEFAULT 'ASSIGNED',
                eta_minutes INTEGER,
                arrived_at TIMESTAMP,
                completed_at TIMESTAMP,
                cancelled_at TIMESTAMP,
                cancellation_reason TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(request_id) REFERENCES services(id),
                FOREIGN KEY(provider_id) REFERENCES providers(id),
                FOREIGN KEY(driver_id) REFERENCES drivers(id)
            );

            CREATE TABLE IF NOT EXISTS transactions (
                id TEXT PRIMARY KEY,
                service_id TEXT,
                user_id TEXT,
                amount REAL NOT NULL,
                currency TEXT NOT NULL DEFAULT 'CLP',
                payment_status TEXT,
                status TEXT NOT NULL DEFAULT 'pending',
                payment_method TEXT,
                transaction_ref TEXT,
                webpay_token TEXT,
                webpay_tx_id TEXT,
                refund_amount REAL,
                refunded_at TIMESTAMP,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY(service_id) REFERENCES services(id)
            );

            CREATE TABLE IF NOT EXISTS event_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                request_id TEXT,
                payment_id TEXT,
                dispatch_id TEXT,
                event_type TEXT NOT NULL,
                actor_type TEXT NOT NULL DEFAULT 'system',
                payload TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS n8n_webhook_config (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                webhook_name TEXT NOT NULL UNIQUE,
                webhook_url TEXT,
                is_active INTEGER NOT NULL DEFAULT 0,
                last_triggered_at TIMESTAMP
            );
            """,
        ),
        # Migration 2: pricing catalog
        (
            2,
            """
            CREATE TABLE IF NOT EXISTS rates (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                vehicle_type TEXT NOT NULL,
                base_price REAL,
                price_per_km REAL,
                minimum_price REAL,
                is_active INTEGER NOT NULL DEFAULT 1
            );

            -- day_of_week holds a JSON list of day numbers, 0 = Sunday.
            CREATE TABLE IF NOT EXISTS pricing_time_rules (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT,
                day_of_week TEXT NOT NULL DEFAULT '[]',
                start_hour INTEGER NOT NULL,
                end_hour INTEGER NOT NULL,
                multiplier REAL NOT NULL DEFAULT 1.0,
                is_active INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS service_addons (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                description TEXT,
                category TEXT,
                base_price REAL NOT NULL DEFAULT 0,
                price_type TEXT NOT NULL DEFAULT 'fixed',
                icon TEXT,
                is_active INTEGER NOT NULL DEFAULT 1
            );
            """,
        ),
        # Migration 3: subscriptions and loyalty
        (
            3,
            """
            CREATE TABLE IF NOT EXISTS subscription_plans (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                tier TEXT NOT NULL,
                description TEXT,
                monthly_price REAL NOT NULL DEFAULT 0,
                annual_price REAL,
                features TEXT,
                commission_discount_percent REAL NOT NULL DEFAULT 0,
                priority_support INTEGER NOT NULL DEFAULT 0,
                advanced_analytics INTEGER NOT NULL DEFAULT 0,
                is_active INTEGER NOT NULL DEFAULT 1
            );

            CREATE TABLE IF NOT EXISTS loyalty_points (
                user_id TEXT PRIMARY KEY,
                points_balance INTEGER NOT NULL DEFAULT 0,
                lifetime_points INTEGER NOT NULL DEFAULT 0,
                tier TEXT NOT NULL DEFAULT 'bronze',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            );
            """,
        ),
        # Migration 4: indices on the lookup columns the handlers filter by
        (
            4,
            """
            CREATE INDEX IF NOT EXISTS idx_services_status_created ON services(status, created_at);
            CREATE INDEX IF NOT EXISTS idx_dispatch_request_id ON dispatch(request_id);
            CREATE INDEX IF NOT EXISTS idx_transactions_service_id ON transactions(service_id);
            CREATE INDEX IF NOT EXISTS idx_transactions_webpay_token ON transactions(webpay_token);
            CREATE INDEX IF NOT EXISTS idx_event_log_request_id ON event_log(request_id);
            CREATE INDEX IF NOT EXISTS idx_rates_vehicle_type ON rates(vehicle_type);
            """,
        ),
    ]

    with get_cursor() as cursor:
        cursor.execute(
            "CREATE TABLE IF NOT EXISTS migrations (version INTEGER PRIMARY KEY)"
        )
        cursor.execute("SELECT MAX(version) as version FROM migrations")
        row = cursor.fetchone()
        current_version = row["version"] if row and row["version"] is not None else 0

        for version, sql in migrations:
            if version > current_version:
                cursor.executescript(sql)
                cursor.execute(
                    "INSERT INTO migrations (version) VALUES (?)", (version,)
                )
                current_version = version

        for name in KNOWN_WEBHOOKS:
            cursor.execute(
                "INSERT OR IGNORE INTO n8n_webhook_config (webhook_name, is_active) VALUES (?, 0)",
                (name,),
            )
