#!/usr/bin/env python
# backend/app/commands/payouts.py
"""
Teacher payout management commands for LinguaDesk.

Usage:
    python -m app.commands.payouts preview --org ORG --teacher T --start 2024-01-01 --end 2024-01-31
    python -m app.commands.payouts create  --org ORG --teacher T --start 2024-01-01 --end 2024-01-31
    python -m app.commands.payouts status  --org ORG --payout P --status APPROVED
    python -m app.commands.payouts delete  --org ORG --payout P
    python -m app.commands.payouts list    --org ORG [--teacher T] [--status PENDING]
    python -m app.commands.payouts show    --org ORG --payout P
    python -m app.commands.payouts summary --org ORG
    python -m app.commands.payouts lessons --org ORG --teacher T --day 2024-01-15

Every command prints JSON to stdout. Domain errors are printed as JSON to
stderr with exit code 1; invalid input exits with code 2.
"""

import argparse
from datetime import date
import json
import logging
import sys
from typing import Any, Callable, ContextManager, Dict, List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.exceptions import DomainException
from app.database import get_db_session
from app.schemas.teacher_payout import (
    ErrorResponse,
    LessonPayoutInfoResponse,
    LessonRangeRequest,
    PayoutCreateRequest,
    PayoutCreateResponse,
    PayoutListRequest,
    PayoutPreviewRequest,
    PayoutPreviewResponse,
    PayoutStatusUpdateRequest,
    TeacherPayoutResponse,
    TeacherPayoutSummaryResponse,
)
from app.services.teacher_payout_service import TeacherPayoutService

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


class PayoutCommand:
    """Payout management command handler."""

    def __init__(self, db: Session) -> None:
        self.service = TeacherPayoutService(db)

    def preview(self, organization_id: str, request: PayoutPreviewRequest) -> Dict[str, Any]:
        preview = self.service.preview_payout(
            organization_id, request.teacher_id, request.period_start, request.period_end
        )
        return PayoutPreviewResponse.model_validate(preview).model_dump(mode="json")

    def create(self, organization_id: str, request: PayoutCreateRequest) -> Dict[str, Any]:
        payout, preview = self.service.create_payout(
            organization_id,
            request.teacher_id,
            request.period_start,
            request.period_end,
            notes=request.notes,
        )
        response = PayoutCreateResponse(
            payout=TeacherPayoutResponse.model_validate(payout),
            preview=PayoutPreviewResponse.model_validate(preview),
        )
        return response.model_dump(mode="json")

    def set_status(
        self, organization_id: str, payout_id: str, request: PayoutStatusUpdateRequest
    ) -> Dict[str, Any]:
        payout = self.service.set_payout_status(
            organization_id, payout_id, request.status, notes=request.notes
        )
        return TeacherPayoutResponse.model_validate(payout).model_dump(mode="json")

    def delete(self, organization_id: str, payout_id: str) -> Dict[str, Any]:
        self.service.delete_payout(organization_id, payout_id)
        return {"deleted": True, "payout_id": payout_id}

    def list_payouts(self, organization_id: str, request: PayoutListRequest) -> List[Dict[str, Any]]:
        payouts = self.service.list_payouts(organization_id, request.to_filters())
        return [
            TeacherPayoutResponse.model_validate(payout).model_dump(mode="json")
            for payout in payouts
        ]

    def show(self, organization_id: str, payout_id: str) -> Dict[str, Any]:
        payout = self.service.get_payout(organization_id, payout_id)
        return TeacherPayoutResponse.model_validate(payout).model_dump(mode="json")

    def summary(self, organization_id: str) -> List[Dict[str, Any]]:
        return [
            TeacherPayoutSummaryResponse.model_validate(item).model_dump(mode="json")
            for item in self.service.get_teachers_summary(organization_id)
        ]

    def lessons(self, organization_id: str, request: LessonRangeRequest) -> List[Dict[str, Any]]:
        if request.from_date == request.to_date:
            infos = self.service.get_lessons_for_day(
                organization_id, request.teacher_id, request.from_date
            )
        else:
            infos = self.service.get_lessons_for_range(
                organization_id, request.teacher_id, request.from_date, request.to_date
            )
        return [
            LessonPayoutInfoResponse.model_validate(info).model_dump(mode="json") for info in infos
        ]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="LinguaDesk Teacher Payout Management",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m app.commands.payouts preview --org ORG --teacher T --start 2024-01-01 --end 2024-01-31
  python -m app.commands.payouts create --org ORG --teacher T --start 2024-01-01 --end 2024-01-31
  python -m app.commands.payouts status --org ORG --payout P --status PAID --notes "Bank transfer"
  python -m app.commands.payouts lessons --org ORG --teacher T --from 2024-01-01 --to 2024-01-07
        """,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    def add_command(name: str, help_text: str) -> argparse.ArgumentParser:
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("--org", required=True, dest="organization_id", help="Organization ID")
        return sub

    for name, help_text in (
        ("preview", "Preview payable lessons for a period"),
        ("create", "Create a payout for a period"),
    ):
        sub = add_command(name, help_text)
        sub.add_argument("--teacher", required=True, dest="teacher_id")
        sub.add_argument("--start", required=True, type=date.fromisoformat, dest="period_start")
        sub.add_argument("--end", required=True, type=date.fromisoformat, dest="period_end")
        if name == "create":
            sub.add_argument("--notes", default=None)

    status_parser = add_command("status", "Change payout status")
    status_parser.add_argument("--payout", required=True, dest="payout_id")
    status_parser.add_argument("--status", required=True)
    status_parser.add_argument("--notes", default=None)

    for name, help_text in (("delete", "Delete latest pending payout"), ("show", "Show payout")):
        sub = add_command(name, help_text)
        sub.add_argument("--payout", required=True, dest="payout_id")

    list_parser = add_command("list", "List payouts")
    list_parser.add_argument("--teacher", dest="teacher_id", default=None)
    list_parser.add_argument("--status", default=None)
    list_parser.add_argument("--start", type=date.fromisoformat, dest="period_start", default=None)
    list_parser.add_argument("--end", type=date.fromisoformat, dest="period_end", default=None)
    list_parser.add_argument("--limit", type=int, default=None)

    add_command("summary", "Pending payouts per active teacher")

    lessons_parser = add_command("lessons", "Lessons with payout standing")
    lessons_parser.add_argument("--teacher", required=True, dest="teacher_id")
    lessons_parser.add_argument("--day", type=date.fromisoformat, default=None)
    lessons_parser.add_argument("--from", type=date.fromisoformat, dest="from_date", default=None)
    lessons_parser.add_argument("--to", type=date.fromisoformat, dest="to_date", default=None)

    return parser


def _dispatch(cmd: PayoutCommand, args: argparse.Namespace) -> Any:
    org = args.organization_id
    if args.command == "preview":
        request = PayoutPreviewRequest(
            teacher_id=args.teacher_id, period_start=args.period_start, period_end=args.period_end
        )
        return cmd.preview(org, request)
    if args.command == "create":
        create_request = PayoutCreateRequest(
            teacher_id=args.teacher_id,
            period_start=args.period_start,
            period_end=args.period_end,
            notes=args.notes,
        )
        return cmd.create(org, create_request)
    if args.command == "status":
        return cmd.set_status(
            org, args.payout_id, PayoutStatusUpdateRequest(status=args.status, notes=args.notes)
        )
    if args.command == "delete":
        return cmd.delete(org, args.payout_id)
    if args.command == "show":
        return cmd.show(org, args.payout_id)
    if args.command == "list":
        return cmd.list_payouts(
            org,
            PayoutListRequest(
                teacher_id=args.teacher_id,
                status=args.status,
                period_start=args.period_start,
                period_end=args.period_end,
                limit=args.limit,
            ),
        )
    if args.command == "summary":
        return cmd.summary(org)
    if args.command == "lessons":
        from_date = args.day or args.from_date
        to_date = args.day or args.to_date or from_date
        return cmd.lessons(
            org, LessonRangeRequest(teacher_id=args.teacher_id, from_date=from_date, to_date=to_date)
        )
    raise ValueError(f"Unknown command: {args.command}")


def main(
    argv: Optional[List[str]] = None,
    session_factory: Callable[[], ContextManager[Session]] = get_db_session,
) -> int:
    """Main entry point for the payouts command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        with session_factory() as db:
            result = _dispatch(PayoutCommand(db), args)
    except ValidationError as exc:
        payload = {"code": "VALIDATION_ERROR", "errors": exc.errors(include_url=False)}
        print(json.dumps(payload, default=str), file=sys.stderr)
        return 2
    except DomainException as exc:
        logger.warning("Payout command failed: %s (%s)", exc.message, exc.code)
        print(ErrorResponse.from_exception(exc).model_dump_json(), file=sys.stderr)
        return 1

    print(json.dumps(result, indent=2, default=str))
    return 0


if __name__ == "__main__":
    sys.exit(main())
