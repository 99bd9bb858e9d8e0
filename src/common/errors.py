from __future__ import annotations


class CampaignError(Exception):
    """
    Business-rule failure reported to the caller.

    Each kind carries the stable numeric `code` used on the wire, and is
    raised before any state is written.
    """

    code: int = 0

    @property
    def kind(self) -> str:
        return type(self).__name__


class InvalidMilestonePercentages(CampaignError):
    code = 1


class CampaignInactive(CampaignError):
    code = 2


class MilestoneAlreadyCompleted(CampaignError):
    code = 3


class MilestoneNotCompleted(CampaignError):
    code = 4


class MilestoneAlreadyApproved(CampaignError):
    code = 5


class InvocationAborted(RuntimeError):
    """Unrecoverable failure: the host discards the whole invocation."""


class AuthorizationError(InvocationAborted):
    """The invocation carries no proof for a required identity."""


class MilestoneLookupError(InvocationAborted, IndexError):
    """Milestone index outside the campaign's milestone list."""


class CampaignNotInitialized(InvocationAborted):
    """No campaign data has been committed yet."""


class InvalidArgument(InvocationAborted, ValueError):
    """Argument outside its domain, or an unknown operation."""


class ArithmeticOverflow(InvocationAborted, OverflowError):
    """An amount would leave the signed 128-bit range."""
