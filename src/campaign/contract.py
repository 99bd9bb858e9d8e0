from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence, Tuple

from common.auth import InvocationAuth, check_identity
from common.errors import (
    ArithmeticOverflow,
    CampaignInactive,
    CampaignNotInitialized,
    InvalidArgument,
    InvalidMilestonePercentages,
    MilestoneAlreadyApproved,
    MilestoneAlreadyCompleted,
    MilestoneLookupError,
    MilestoneNotCompleted,
)
from state.errors import MissingKeyError
from state.models import (
    I128_MAX,
    I128_MIN,
    TOTAL_PERCENTAGE,
    U32_MAX,
    CampaignData,
    DataKey,
    Milestone,
    MilestoneStatus,
    dump_campaign_json,
    load_campaign_json,
)


logger = logging.getLogger(__name__)

_KEY = DataKey.CAMPAIGN_DATA.value


def _check_int(value: Any, lo: int, hi: int, what: str) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(f"{what} must be an integer, got {value!r}")
    if not lo <= value <= hi:
        raise InvalidArgument(f"{what} out of range [{lo}, {hi}]: {value}")
    return value


def _check_percentages(percentages: Any) -> List[int]:
    if isinstance(percentages, (str, bytes)) or not isinstance(percentages, Sequence):
        raise InvalidArgument(f"milestone_percentages must be a list of integers, got {percentages!r}")
    return [_check_int(p, 0, U32_MAX, "milestone percentage") for p in percentages]


# -------- Transaction boundary --------
def _load(store) -> Tuple[CampaignData, Optional[str]]:
    """Load the full aggregate and the store version it was read at."""
    try:
        raw, version = store.get(_KEY)
    except MissingKeyError as e:
        raise CampaignNotInitialized("Campaign has not been initialized") from e
    return (load_campaign_json(raw), version)


def _commit(store, data: CampaignData, *, if_match: Optional[str] = None) -> Optional[str]:
    """Replace the stored aggregate in one write."""
    return store.set(_KEY, dump_campaign_json(data), if_match=if_match)


def _lookup(data: CampaignData, milestone_index: int) -> Milestone:
    if milestone_index >= len(data.milestones):
        raise MilestoneLookupError(
            f"Milestone index {milestone_index} out of range ({len(data.milestones)} milestones)"
        )
    return data.milestones[milestone_index]


def _replace_milestone(data: CampaignData, milestone_index: int, milestone: Milestone) -> CampaignData:
    milestones = list(data.milestones)
    milestones[milestone_index] = milestone
    return data.model_copy(update={"milestones": milestones})


# -------- Operations --------
def initialize(
    store,
    auth: InvocationAuth,
    creator: str,
    admin: str,
    target_amount: int,
    milestone_percentages: Sequence[int],
) -> None:
    """
    Create the campaign aggregate and commit it.

    Requires proofs from both `creator` and `admin`. The percentages must sum to
    exactly 100, one pending milestone is created per entry, in order.

    There is no guard against a second call: it overwrites the existing campaign.
    """
    creator = check_identity(creator, "creator")
    admin = check_identity(admin, "admin")
    target_amount = _check_int(target_amount, I128_MIN, I128_MAX, "target_amount")
    percentages = _check_percentages(milestone_percentages)

    auth.require_auth(creator)
    auth.require_auth(admin)

    total = sum(percentages)
    if total != TOTAL_PERCENTAGE:
        logger.warning("Rejected initialization: milestone percentages sum to %d", total)
        raise InvalidMilestonePercentages(
            f"Milestone percentages sum to {total}, expected {TOTAL_PERCENTAGE}"
        )

    if store.has(_KEY):
        logger.warning("Re-initializing campaign; existing state is overwritten")

    data = CampaignData.new(
        creator=creator,
        admin=admin,
        target_amount=target_amount,
        percentages=percentages,
    )
    _commit(store, data)
    logger.info(
        "Campaign initialized: creator=%s admin=%s target=%d milestones=%s",
        creator,
        admin,
        target_amount,
        percentages,
    )


def donate(store, auth: InvocationAuth, donor: str, amount: int) -> None:
    """Add `amount` to the campaign total. Any amount is accepted, there is no cap."""
    donor = check_identity(donor, "donor")
    amount = _check_int(amount, I128_MIN, I128_MAX, "amount")

    auth.require_auth(donor)

    data, version = _load(store)
    if not data.is_active:
        logger.warning("Rejected donation from %s: campaign inactive", donor)
        raise CampaignInactive("Campaign is not accepting donations")

    new_amount = data.current_amount + amount
    if not I128_MIN <= new_amount <= I128_MAX:
        raise ArithmeticOverflow(f"current_amount overflow: {data.current_amount} + {amount}")

    _commit(store, data.model_copy(update={"current_amount": new_amount}), if_match=version)
    logger.info("Donation of %d from %s; current_amount=%d", amount, donor, new_amount)


def complete_milestone(store, auth: InvocationAuth, milestone_index: int) -> None:
    """Mark a pending milestone completed. Only the stored creator may do this."""
    milestone_index = _check_int(milestone_index, 0, U32_MAX, "milestone_index")

    data, version = _load(store)
    auth.require_auth(data.creator)

    milestone = _lookup(data, milestone_index)
    if milestone.completed:
        logger.warning("Rejected completion of milestone %d: already completed", milestone_index)
        raise MilestoneAlreadyCompleted(f"Milestone {milestone_index} is already completed")

    _commit(store, _replace_milestone(data, milestone_index, milestone.mark_completed()), if_match=version)
    logger.info("Milestone %d completed by %s", milestone_index, data.creator)


def approve_milestone(store, auth: InvocationAuth, milestone_index: int) -> None:
    """Approve a completed milestone. Only the stored admin may do this."""
    milestone_index = _check_int(milestone_index, 0, U32_MAX, "milestone_index")

    data, version = _load(store)
    auth.require_auth(data.admin)

    milestone = _lookup(data, milestone_index)
    if milestone.status is MilestoneStatus.PENDING:
        logger.warning("Rejected approval of milestone %d: not completed", milestone_index)
        raise MilestoneNotCompleted(f"Milestone {milestone_index} has not been completed")
    if milestone.approved:
        logger.warning("Rejected approval of milestone %d: already approved", milestone_index)
        raise MilestoneAlreadyApproved(f"Milestone {milestone_index} is already approved")

    _commit(store, _replace_milestone(data, milestone_index, milestone.mark_approved()), if_match=version)
    logger.info("Milestone %d approved by %s", milestone_index, data.admin)


def get_campaign_details(store) -> CampaignData:
    data, _ = _load(store)
    return data
