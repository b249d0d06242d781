"""Issue a bearer token for the API.

Usage:
    python create_token.py <subject> <role> [days]

For example ``python create_token.py ops@gogrua.cl admin 365``.
"""
import sys

from gogrua_api.app.core.security import ROLES, create_access_token


def main(argv) -> int:
    if len(argv) < 3 or argv[2] not in ROLES:
        print(__doc__)
        print("Roles: " + ", ".join(ROLES))
        return 1
    days = int(argv[3]) if len(argv) > 3 else 365
    token = create_access_token({"sub": argv[1], "role": argv[2]}, expires_delta=days * 24 * 60 * 60)
    print(token)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
