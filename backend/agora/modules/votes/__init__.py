"""
Votes Module - Up/down votes on topics and replies.
"""

from agora.modules.votes.service import VoteService

__all__ = ["VoteService"]
