from __future__ import annotations

import json
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


I128_MIN = -(2**127)
I128_MAX = 2**127 - 1
U32_MAX = 2**32 - 1

# Milestone percentages must add up to exactly this.
TOTAL_PERCENTAGE = 100


class DataKey(str, Enum):
    """Storage keys used by the campaign instance. There is only one."""

    CAMPAIGN_DATA = "campaign_data"


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    APPROVED = "approved"


class Milestone(BaseModel):
    """
    One percentage-weighted deliverable of the campaign.

    The lifecycle is a single tag rather than two flags:
        pending -> completed -> approved
    so `approved` can never be true while `completed` is false.
    """

    model_config = ConfigDict(frozen=True)

    percentage: int = Field(ge=0, le=U32_MAX, description="Share of the target, in percent")
    status: MilestoneStatus = Field(default=MilestoneStatus.PENDING)

    @property
    def completed(self) -> bool:
        return self.status in (MilestoneStatus.COMPLETED, MilestoneStatus.APPROVED)

    @property
    def approved(self) -> bool:
        return self.status is MilestoneStatus.APPROVED

    def mark_completed(self) -> "Milestone":
        return self.model_copy(update={"status": MilestoneStatus.COMPLETED})

    def mark_approved(self) -> "Milestone":
        return self.model_copy(update={"status": MilestoneStatus.APPROVED})


class CampaignData(BaseModel):
    """
    Persistent campaign aggregate, stored under `DataKey.CAMPAIGN_DATA`.

    Fields
    - creator: identity that attests milestone completion.
    - admin: identity that approves completed milestones.
    - target_amount: fundraising goal (signed 128-bit), fixed after initialization.
    - current_amount: cumulative donations (signed 128-bit), starts at 0.
    - milestones: ordered milestones; the list position is the milestone index.
    - is_active: whether donations are accepted.

    Notes
    - Amounts are accounting figures only; no asset custody happens here.
    - The milestone percentages always sum to 100. This is re-checked on every
      decode, so a tampered or corrupt stored object fails to load.
    """

    creator: str = Field(min_length=1)
    admin: str = Field(min_length=1)
    target_amount: int = Field(ge=I128_MIN, le=I128_MAX)
    current_amount: int = Field(default=0, ge=I128_MIN, le=I128_MAX)
    milestones: List[Milestone]
    is_active: bool = True

    @field_validator("milestones")
    @classmethod
    def _percentages_total(cls, v: List[Milestone]) -> List[Milestone]:
        total = sum(m.percentage for m in v)
        if total != TOTAL_PERCENTAGE:
            raise ValueError(f"milestone percentages sum to {total}, expected {TOTAL_PERCENTAGE}")
        return v

    @classmethod
    def new(cls, *, creator: str, admin: str, target_amount: int, percentages: List[int]) -> "CampaignData":
        """Fresh campaign with every milestone pending and nothing donated."""
        return cls(
            creator=creator,
            admin=admin,
            target_amount=target_amount,
            current_amount=0,
            milestones=[Milestone(percentage=p) for p in percentages],
            is_active=True,
        )


def dump_campaign_json(data: CampaignData) -> bytes:
    # Deterministic JSON: stable key order, no extra whitespace
    return json.dumps(
        data.model_dump(mode="json"), separators=(",", ":"), sort_keys=True
    ).encode("utf-8")


def load_campaign_json(raw: bytes) -> CampaignData:
    try:
        return CampaignData.model_validate(json.loads(raw.decode("utf-8")))
    except ValueError as ex:
        raise ValueError("Failed to parse stored campaign data") from ex
