#!/usr/bin/env python3
"""Issue a signed bearer token for calling the business_intelligence API.

Examples:
  python backend/scripts/issue_token.py --subject analyst@example.com
  python backend/scripts/issue_token.py --subject ops --role admin --hours 2 --pretty
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import timedelta

# Add backend/ to path when run as a script.
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import get_settings
from core.security import TokenAuthority


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Issue a signed access token")
    parser.add_argument("--subject", required=True, help="Principal identifier (sub claim)")
    parser.add_argument("--role", default="analyst", help="Role claim carried in the token")
    parser.add_argument("--hours", type=float, default=None, help="Token lifetime; defaults to JWT_EXPIRATION_HOURS")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print JSON output")
    args = parser.parse_args(argv)

    try:
        settings = get_settings()
        ttl = timedelta(hours=args.hours) if args.hours is not None else None
        token = TokenAuthority(settings).issue({"sub": args.subject, "role": args.role}, expires_delta=ttl)
    except Exception as exc:  # noqa: BLE001
        print(json.dumps({"status": "failed", "error": str(exc)}))
        return 1

    summary = {
        "status": "success",
        "subject": args.subject,
        "role": args.role,
        "expires_in_hours": args.hours if args.hours is not None else settings.jwt_expiration_hours,
        "token": token,
    }
    print(json.dumps(summary, indent=2 if args.pretty else None, sort_keys=bool(args.pretty)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
