"""
Report Service - Report intake and the moderation queue.

Reports never hide content by themselves. When five or more reports on
the same item are pending, the queue flags it with
`auto_hide_recommended` for a moderator to act on.
"""

from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from agora.core.exceptions import (
    BadRequestError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
)
from agora.core.utils import isoformat, offset_for, pagination_meta, truncate, utcnow
from agora.models.forum import Topic
from agora.models.moderation import (
    OPEN_REPORT_STATUSES,
    Report,
    ReportableType,
    ReportReason,
    ReportStatus,
)
from agora.models.notification import NotificationType
from agora.models.user import User
from agora.modules.notifications.service import NotificationDispatcher
from agora.modules.reports.repository import ReportRepository

AUTO_HIDE_REPORT_COUNT = 5
PREVIEW_LENGTH = 150
MAX_DESCRIPTION_LENGTH = 1000

RESOLVED_STATUSES = (
    ReportStatus.RESOLVED_VIOLATION,
    ReportStatus.RESOLVED_NO_ACTION,
    ReportStatus.DISMISSED,
)
FALSE_REPORT_STATUSES = (ReportStatus.RESOLVED_NO_ACTION, ReportStatus.DISMISSED)


class ReportService:
    """
    Service for content reports.

    Usage:
        reports = ReportService(db, ReportRepository(db), NotificationDispatcher())
        report = await reports.create_report(user, ReportableType.TOPIC, 12, ReportReason.SPAM)
    """

    def __init__(
        self,
        db: AsyncSession,
        reports: ReportRepository,
        notifier: NotificationDispatcher,
    ) -> None:
        self.db = db
        self.reports = reports
        self.notifier = notifier

    async def create_report(
        self,
        reporter: User,
        reportable_type: ReportableType,
        reportable_id: int,
        reason: ReportReason,
        description: str | None = None,
    ) -> Report:
        """
        Report a topic or reply.

        Raises:
            NotFoundError: Content does not exist
            ForbiddenError: Reporting your own content
            ConflictError: Already reported by this user
        """
        if description and len(description) > MAX_DESCRIPTION_LENGTH:
            raise BadRequestError("Description cannot exceed 1000 characters")

        content = await self.reports.get_content(reportable_type, reportable_id)
        if not content:
            raise NotFoundError(f"{reportable_type.value.capitalize()} not found")
        if content.author_id == reporter.id:
            raise ForbiddenError("You cannot report your own content")
        if await self.reports.find(reporter.id, reportable_type, reportable_id):
            raise ConflictError("You have already reported this content")

        report = await self.reports.add(
            Report(
                reporter_id=reporter.id,
                reportable_type=reportable_type,
                reportable_id=reportable_id,
                reason=reason,
                description=description,
            )
        )

        pending = len(await self.reports.pending_for_content(reportable_type, reportable_id))
        if pending >= AUTO_HIDE_REPORT_COUNT:
            logger.warning(
                f"{reportable_type.value} {reportable_id} has {pending} pending reports"
            )
        logger.info(f"Report {report.id} created by user {reporter.id}")
        return report

    # ==================== Queue ====================

    async def list_reports(
        self,
        status: ReportStatus | None = None,
        reportable_type: ReportableType | None = None,
        reason: ReportReason | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> dict[str, Any]:
        reports, total = await self.reports.list_reports(
            status=status,
            reportable_type=reportable_type,
            reason=reason,
            limit=limit,
            offset=offset_for(page, limit),
        )
        items = []
        for report in reports:
            data = self.to_dict(report)
            data["content_preview"] = await self._preview(report)
            items.append(data)
        return {"items": items, "pagination": pagination_meta(page, limit, total)}

    async def get_report(self, report_id: int) -> dict[str, Any]:
        """A report with the other pending reports on the same content."""
        report = await self._get(report_id)
        pending = await self.reports.pending_for_content(
            report.reportable_type, report.reportable_id
        )
        related = [self.to_dict(r) for r in pending if r.id != report.id]

        data = self.to_dict(report)
        data["content_preview"] = await self._preview(report)
        data["related_reports"] = related
        data["pending_report_count"] = len(pending)
        data["auto_hide_recommended"] = len(pending) >= AUTO_HIDE_REPORT_COUNT
        return data

    async def start_review(self, report_id: int, moderator: User) -> Report:
        report = await self._get(report_id)
        if report.status != ReportStatus.PENDING:
            raise ConflictError("Report is not pending")
        report.status = ReportStatus.REVIEWING
        await self.db.flush()
        logger.info(f"Report {report_id} under review by user {moderator.id}")
        return report

    async def resolve_report(
        self,
        report_id: int,
        moderator: User,
        status: ReportStatus,
        resolution_note: str | None = None,
    ) -> Report:
        """
        Close a report. A report can be resolved only once.

        Raises:
            BadRequestError: `status` is not a resolution
            ConflictError: Report already resolved
        """
        if status not in RESOLVED_STATUSES:
            raise BadRequestError(
                "Status must be resolved_violation, resolved_no_action or dismissed"
            )

        report = await self._get(report_id)
        if report.status not in OPEN_REPORT_STATUSES:
            raise ConflictError("Report has already been resolved")

        report.status = status
        report.resolved_by = moderator.id
        report.resolved_at = utcnow()
        report.resolution_note = resolution_note
        await self.db.flush()

        self.notifier.send(
            report.reporter_id,
            NotificationType.REPORT_RESOLVED,
            "Your report has been reviewed",
            f"Thank you for your report. Outcome: {status.value.replace('_', ' ')}",
            reference_id=report.id,
        )
        logger.info(f"Report {report_id} resolved as {status.value} by user {moderator.id}")
        return report

    # ==================== Statistics ====================

    async def get_statistics(self) -> dict[str, Any]:
        by_status = await self.reports.count_by_status()
        by_reason = await self.reports.count_by_reason()
        return {
            "total": sum(by_status.values()),
            "pending": by_status.get(ReportStatus.PENDING, 0),
            "reviewing": by_status.get(ReportStatus.REVIEWING, 0),
            "resolved": sum(by_status.get(s, 0) for s in RESOLVED_STATUSES),
            "by_reason": {reason.value: by_reason.get(reason, 0) for reason in ReportReason},
        }

    async def get_false_report_count(self, user_id: int) -> int:
        """Reports by the user closed without action."""
        return await self.reports.count_for_reporter(user_id, FALSE_REPORT_STATUSES)

    # ==================== Helpers ====================

    async def _get(self, report_id: int) -> Report:
        report = await self.reports.get(report_id)
        if not report:
            raise NotFoundError("Report not found")
        return report

    async def _preview(self, report: Report) -> str | None:
        content = await self.reports.get_content(report.reportable_type, report.reportable_id)
        if content is None:
            return None
        text = f"{content.title}: {content.content}" if isinstance(content, Topic) else content.content
        return truncate(text, PREVIEW_LENGTH)

    @staticmethod
    def to_dict(report: Report) -> dict[str, Any]:
        return {
            "id": report.id,
            "reporter_id": report.reporter_id,
            "reportable_type": report.reportable_type.value,
            "reportable_id": report.reportable_id,
            "reason": report.reason.value,
            "description": report.description,
            "status": report.status.value,
            "resolved_by": report.resolved_by,
            "resolved_at": isoformat(report.resolved_at),
            "resolution_note": report.resolution_note,
            "created_at": isoformat(report.created_at),
        }
