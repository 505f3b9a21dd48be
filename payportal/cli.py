"""Operator command line: employee provisioning and audit sink verification."""

from __future__ import annotations

import argparse
import logging
import re
import sys

from payportal.core.config import settings
from payportal.core.security import totp_provisioning_uri
from payportal.db import session as db_session
from payportal.db.base import Base
from payportal.services.account_service import upsert_employee
from payportal.services.audit_sink import verify_audit_file

EMPLOYEE_ID_PATTERN = re.compile(r"^EMP\d{3}$")


def _seed_employee(args: argparse.Namespace) -> int:
    if not EMPLOYEE_ID_PATTERN.match(args.id):
        print("employee id must match EMP followed by 3 digits, e.g. EMP002", file=sys.stderr)
        return 2
    Base.metadata.create_all(bind=db_session.engine)
    with db_session.SessionLocal() as db:
        employee, totp_secret = upsert_employee(
            db,
            args.id,
            args.password,
            full_name=args.name,
            enroll_totp=args.enroll_totp,
        )
        print(f"Employee {employee.employee_id} ({employee.full_name}) saved.")
        if totp_secret is not None:
            print("Scan this URI with an authenticator app:")
            print(totp_provisioning_uri(totp_secret, employee.employee_id))
    return 0


def _verify_audit(args: argparse.Namespace) -> int:
    try:
        issues = verify_audit_file(args.path, args.key)
    except FileNotFoundError:
        print(f"audit sink not found: {args.path}", file=sys.stderr)
        return 2
    if not args.key:
        print("warning: no signing key given; only sequence ordering was checked", file=sys.stderr)
    for issue in issues:
        print(f"line {issue.line_number}: {issue.problem}")
    if issues:
        return 1
    print("audit sink OK")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="payportal")
    commands = parser.add_subparsers(dest="command", required=True)

    seed = commands.add_parser("seed-employee", help="create or update an employee account")
    seed.add_argument("--id", required=True, help="employee id, e.g. EMP001")
    seed.add_argument("--password", required=True)
    seed.add_argument("--name", default=None)
    seed.add_argument("--enroll-totp", action="store_true", help="enroll a new TOTP second factor")

    audit = commands.add_parser("verify-audit", help="check audit sink signatures and ordering")
    audit.add_argument("--path", default=settings.audit_sink_path)
    audit.add_argument("--key", default=settings.audit_sign_key, help="hex HMAC key")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    if args.command == "seed-employee":
        return _seed_employee(args)
    return _verify_audit(args)


if __name__ == "__main__":
    sys.exit(main())
