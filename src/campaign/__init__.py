"""
Milestone-gated crowdfunding campaign.

`contract` holds the five operations; `handler` is the invocation surface
(event dispatch and the AWS Lambda entry point).
"""

from .contract import (
    approve_milestone,
    complete_milestone,
    donate,
    get_campaign_details,
    initialize,
)

__all__ = [
    "approve_milestone",
    "complete_milestone",
    "donate",
    "get_campaign_details",
    "initialize",
]
