"""Operator commands: mint bearer tokens and seed categories.

    python manage.py user-id alice@example.com
    python manage.py issue-token u_0123... --expires-in 86400
    python manage.py add-category u_0123... Food --category-id cat-food
"""

import argparse
import sys
import uuid

from auth import derive_user_id, issue_token
from config import get_settings
from database import session_scope
from models import CategoryKind
from services import CategoryService


def _cmd_user_id(args: argparse.Namespace) -> int:
    print(derive_user_id(args.identifier))
    return 0


def _cmd_issue_token(args: argparse.Namespace) -> int:
    secret = get_settings().auth_secret
    if not secret:
        print("LEDGER_AUTH_SECRET is not set", file=sys.stderr)
        return 1
    expires_in = args.expires_in if args.expires_in > 0 else None
    try:
        token = issue_token(args.user_id, secret, expires_in=expires_in)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 1
    print(token)
    return 0


def _cmd_add_category(args: argparse.Namespace) -> int:
    category_id = args.category_id or f"cat-{uuid.uuid4().hex[:12]}"
    with session_scope() as session:
        try:
            category = CategoryService(session, args.user_id).create(
                category_id,
                args.name,
                kind=CategoryKind(args.kind),
                sort_order=args.sort_order,
            )
        except ValueError as exc:
            print(str(exc), file=sys.stderr)
            return 1
        print(f"{category.category_id}\t{category.name}\t{category.kind.value}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="manage.py")
    sub = parser.add_subparsers(dest="command", required=True)

    user_id = sub.add_parser("user-id", help="derive a canonical user id")
    user_id.add_argument("identifier")
    user_id.set_defaults(func=_cmd_user_id)

    token = sub.add_parser("issue-token", help="mint a bearer token")
    token.add_argument("user_id")
    token.add_argument(
        "--expires-in", type=int, default=3600, help="seconds; 0 for no expiry"
    )
    token.set_defaults(func=_cmd_issue_token)

    category = sub.add_parser("add-category", help="create a category for a user")
    category.add_argument("user_id")
    category.add_argument("name")
    category.add_argument("--category-id", default=None)
    category.add_argument(
        "--kind", choices=[k.value for k in CategoryKind], default="expense"
    )
    category.add_argument("--sort-order", type=int, default=None)
    category.set_defaults(func=_cmd_add_category)
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
