"""
Polls Module - Single and multiple choice topic polls.
"""

from agora.modules.polls.service import PollService

__all__ = ["PollService"]
