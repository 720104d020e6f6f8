#!/usr/bin/env python3
"""Grant the admin role (package catalogue management) to an advertiser account (idempotent).

Usage:
  python scripts/attach_admin_role.py --email owner@example.com
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.adsmanager.models import Role, User
from scripts._db_utils import script_session


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("--email", required=True, help="User email to attach admin role")
    args = parser.parse_args()

    with script_session() as s:
        user = s.query(User).filter(User.email == args.email.strip().lower()).one_or_none()
        if not user:
            print(f"User not found: {args.email}")
            return
        role = s.query(Role).filter(Role.key == "admin").one_or_none()
        if not role:
            print("Admin role not found. Run python scripts/init_db.py first.")
            return
        if role in (user.roles or []):
            print(f"User already has admin role: {args.email}")
            return
        user.roles.append(role)
    print(f"Admin role attached to {args.email}")


if __name__ == "__main__":
    main()
