"""
Reputation Module - Point ledger.

Features:
- Append-only reputation history
- Levels and level progress
- Reputation-gated permissions
"""

from agora.modules.reputation.service import ReputationRewards, ReputationService

__all__ = [
    "ReputationService",
    "ReputationRewards",
]
