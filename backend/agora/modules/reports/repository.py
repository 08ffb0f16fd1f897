"""
Report Repository - User reports and the content they point at.
"""

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from agora.models.forum import Reply, Topic
from agora.models.moderation import Report, ReportableType, ReportReason, ReportStatus


class ReportRepository:
    """Queries over `reports`."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, report_id: int) -> Report | None:
        return await self.db.get(Report, report_id)

    async def find(
        self,
        reporter_id: int,
        reportable_type: ReportableType,
        reportable_id: int,
    ) -> Report | None:
        result = await self.db.execute(
            select(Report).where(
                Report.reporter_id == reporter_id,
                Report.reportable_type == reportable_type,
                Report.reportable_id == reportable_id,
            )
        )
        return result.scalar_one_or_none()

    async def add(self, report: Report) -> Report:
        self.db.add(report)
        await self.db.flush()
        return report

    async def list_reports(
        self,
        status: ReportStatus | None = None,
        reportable_type: ReportableType | None = None,
        reason: ReportReason | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Report], int]:
        conditions = []
        if status:
            conditions.append(Report.status == status)
        if reportable_type:
            conditions.append(Report.reportable_type == reportable_type)
        if reason:
            conditions.append(Report.reason == reason)

        result = await self.db.execute(
            select(Report)
            .where(*conditions)
            .order_by(Report.created_at.desc(), Report.id.desc())
            .limit(limit)
            .offset(offset)
        )
        total = await self.db.execute(select(func.count(Report.id)).where(*conditions))
        return list(result.scalars().all()), int(total.scalar_one())

    async def pending_for_content(
        self,
        reportable_type: ReportableType,
        reportable_id: int,
    ) -> list[Report]:
        result = await self.db.execute(
            select(Report)
            .where(
                Report.reportable_type == reportable_type,
                Report.reportable_id == reportable_id,
                Report.status == ReportStatus.PENDING,
            )
            .order_by(Report.created_at, Report.id)
        )
        return list(result.scalars().all())

    async def count_by_status(self) -> dict[ReportStatus, int]:
        result = await self.db.execute(
            select(Report.status, func.count(Report.id)).group_by(Report.status)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    async def count_by_reason(self) -> dict[ReportReason, int]:
        result = await self.db.execute(
            select(Report.reason, func.count(Report.id)).group_by(Report.reason)
        )
        return {row[0]: int(row[1]) for row in result.all()}

    async def count_for_reporter(self, reporter_id: int, statuses: tuple) -> int:
        result = await self.db.execute(
            select(func.count(Report.id)).where(
                Report.reporter_id == reporter_id,
                Report.status.in_(statuses),
            )
        )
        return int(result.scalar_one())

    # ==================== Reported content ====================

    async def get_content(
        self,
        reportable_type: ReportableType,
        reportable_id: int,
    ) -> Topic | Reply | None:
        model = Topic if reportable_type == ReportableType.TOPIC else Reply
        return await self.db.get(model, reportable_id)
