"""
Campaign aggregate and the key-value stores it is persisted in.

The aggregate is serialized to deterministic JSON and stored under a single
key; `S3Store` additionally encrypts it at rest with Fernet.
"""

from .errors import MissingKeyError, OptimisticLockError
from .memory_store import MemoryStore
from .models import CampaignData, DataKey, Milestone, MilestoneStatus

__all__ = [
    "CampaignData",
    "DataKey",
    "MemoryStore",
    "Milestone",
    "MilestoneStatus",
    "MissingKeyError",
    "OptimisticLockError",
]
