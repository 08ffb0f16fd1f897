"""
Report API Endpoints.

Content reports and the moderation queue.
"""

from typing import Any

from fastapi import APIRouter, Depends, Query

from agora.api.deps import (
    RequestSchema,
    get_current_user,
    get_report_service,
    ok,
    require_staff,
)
from agora.models.moderation import ReportableType, ReportReason, ReportStatus
from agora.models.user import User
from agora.modules.reports.service import ReportService

router = APIRouter()


# ==================== Schemas ====================


class CreateReportRequest(RequestSchema):
    """Report a topic or reply."""

    reportable_type: ReportableType
    reportable_id: int
    reason: ReportReason
    description: str | None = None


class ResolveReportRequest(RequestSchema):
    status: ReportStatus
    resolution_note: str | None = None


# ==================== Reports ====================


@router.post("", status_code=201)
async def create_report(
    request: CreateReportRequest,
    user: User = Depends(get_current_user),
    reports: ReportService = Depends(get_report_service),
) -> dict[str, Any]:
    report = await reports.create_report(
        user,
        request.reportable_type,
        request.reportable_id,
        request.reason,
        request.description,
    )
    return ok(reports.to_dict(report))


@router.get("")
async def list_reports(
    status: ReportStatus | None = Query(None),
    reportable_type: ReportableType | None = Query(None),
    reason: ReportReason | None = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    moderator: User = Depends(require_staff),
    reports: ReportService = Depends(get_report_service),
) -> dict[str, Any]:
    """Moderation queue."""
    return ok(await reports.list_reports(status, reportable_type, reason, page, limit))


@router.get("/statistics")
async def get_statistics(
    moderator: User = Depends(require_staff),
    reports: ReportService = Depends(get_report_service),
) -> dict[str, Any]:
    return ok(await reports.get_statistics())


@router.get("/users/{user_id}/false-reports")
async def get_false_report_count(
    user_id: int,
    moderator: User = Depends(require_staff),
    reports: ReportService = Depends(get_report_service),
) -> dict[str, Any]:
    return ok({"user_id": user_id, "false_reports": await reports.get_false_report_count(user_id)})


@router.get("/{report_id}")
async def get_report(
    report_id: int,
    moderator: User = Depends(require_staff),
    reports: ReportService = Depends(get_report_service),
) -> dict[str, Any]:
    return ok(await reports.get_report(report_id))


@router.put("/{report_id}/review")
async def start_review(
    report_id: int,
    moderator: User = Depends(require_staff),
    reports: ReportService = Depends(get_report_service),
) -> dict[str, Any]:
    return ok(reports.to_dict(await reports.start_review(report_id, moderator)))


@router.put("/{report_id}/resolve")
async def resolve_report(
    report_id: int,
    request: ResolveReportRequest,
    moderator: User = Depends(require_staff),
    reports: ReportService = Depends(get_report_service),
) -> dict[str, Any]:
    """Close a report (once)."""
    report = await reports.resolve_report(
        report_id, moderator, request.status, request.resolution_note
    )
    return ok(reports.to_dict(report))
