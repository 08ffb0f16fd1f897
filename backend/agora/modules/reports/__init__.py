"""
Reports Module - Content reports and the moderation queue.
"""

from agora.modules.reports.service import ReportService

__all__ = ["ReportService"]
