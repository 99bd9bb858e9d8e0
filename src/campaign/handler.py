from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Iterable, Optional

import boto3
from botocore.exceptions import ClientError

from common.auth import InvocationAuth, parse_identities
from common.errors import CampaignError, InvalidArgument
from state.models import CampaignData
from state.s3_store import DEFAULT_PREFIX, S3Store

from . import contract


logger = logging.getLogger(__name__)

# Environment configuration
ENV_STATE_BUCKET = "STATE_BUCKET"
ENV_STATE_PREFIX = "STATE_PREFIX"  # optional; defaults to "campaign/"
ENV_PARAM_PREFIX = "PARAM_PREFIX"

# Fallbacks matching S3Store.from_env naming
FALLBACK_ENV_STATE_BUCKET = "CAMPAIGN_STATE_BUCKET"
FALLBACK_ENV_STATE_PREFIX = "CAMPAIGN_STATE_PREFIX"
FALLBACK_ENV_PARAM_PREFIX = "CAMPAIGN_PARAM_PREFIX"

# camelCase argument names accepted alongside snake_case
_ARG_ALIASES = {
    "targetAmount": "target_amount",
    "milestonePercentages": "milestone_percentages",
    "milestoneIndex": "milestone_index",
}


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _require(v: Optional[str], what: str) -> str:
    if not v:
        raise RuntimeError(f"Missing required configuration: {what}")
    return v


def _load_ssm_params(prefix: str, names: Iterable[str]) -> Dict[str, Optional[str]]:
    ssm = boto3.client("ssm")
    out: Dict[str, Optional[str]] = {k: None for k in names}
    for name in names:
        full = f"{prefix}{name}"
        try:
            resp = ssm.get_parameter(Name=full, WithDecryption=True)
        except ClientError as e:
            # Leave as None if parameter missing or access denied
            code = e.response.get("Error", {}).get("Code")
            if code in ("ParameterNotFound", "AccessDeniedException"):
                out[name] = None
                continue
            raise
        val = resp.get("Parameter", {}).get("Value")
        out[name] = val if isinstance(val, str) and val != "" else None
    return out


def campaign_view(data: CampaignData) -> Dict[str, Any]:
    """JSON-friendly view of the aggregate, with per-milestone flags spelled out."""
    return {
        "creator": data.creator,
        "admin": data.admin,
        "target_amount": data.target_amount,
        "current_amount": data.current_amount,
        "is_active": data.is_active,
        "milestones": [
            {
                "percentage": m.percentage,
                "status": m.status.value,
                "completed": m.completed,
                "approved": m.approved,
            }
            for m in data.milestones
        ],
    }


def _normalize_args(args: Dict[str, Any]) -> Dict[str, Any]:
    return {_ARG_ALIASES.get(k, k): v for k, v in args.items()}


def _op_initialize(store, auth: InvocationAuth, args: Dict[str, Any]) -> None:
    return contract.initialize(
        store,
        auth,
        args.get("creator"),
        args.get("admin"),
        args.get("target_amount"),
        args.get("milestone_percentages"),
    )


def _op_donate(store, auth: InvocationAuth, args: Dict[str, Any]) -> None:
    return contract.donate(store, auth, args.get("donor"), args.get("amount"))


def _op_complete(store, auth: InvocationAuth, args: Dict[str, Any]) -> None:
    return contract.complete_milestone(store, auth, args.get("milestone_index"))


def _op_approve(store, auth: InvocationAuth, args: Dict[str, Any]) -> None:
    return contract.approve_milestone(store, auth, args.get("milestone_index"))


def _op_details(store, auth: InvocationAuth, args: Dict[str, Any]) -> Dict[str, Any]:  # noqa: ARG001
    return campaign_view(contract.get_campaign_details(store))


_OPERATIONS: Dict[str, Callable[[Any, InvocationAuth, Dict[str, Any]], Any]] = {
    "initialize": _op_initialize,
    "donate": _op_donate,
    "complete_milestone": _op_complete,
    "completeMilestone": _op_complete,
    "approve_milestone": _op_approve,
    "approveMilestone": _op_approve,
    "get_campaign_details": _op_details,
    "getCampaignDetails": _op_details,
}


def invoke(event: Dict[str, Any], *, store, auth: InvocationAuth) -> Dict[str, Any]:
    """
    Dispatch one invocation to a campaign operation.

    Event shape: {"operation": "<name>", "args": {...}}

    Returns:
    - {"ok": True, "result": <value or None>} on success
    - {"ok": False, "error": "<kind>", "code": <int>, "message": str} on a
      business-rule failure (nothing was written)

    Fatal aborts (authorization, bad index, uninitialized campaign, bad
    arguments) propagate so the host discards the invocation.
    """
    op_name = event.get("operation") if isinstance(event, dict) else None
    op = _OPERATIONS.get(op_name) if isinstance(op_name, str) else None
    if op is None:
        raise InvalidArgument(f"Unknown operation: {op_name!r}")

    raw_args = event.get("args") or {}
    if not isinstance(raw_args, dict):
        raise InvalidArgument("args must be an object")

    try:
        result = op(store, auth, _normalize_args(raw_args))
    except CampaignError as e:
        return {"ok": False, "error": e.kind, "code": e.code, "message": str(e)}
    return {"ok": True, "result": result}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:  # noqa: ARG001
    """AWS Lambda entry for campaign invocations.

    Environment:
    - STATE_BUCKET, STATE_PREFIX (default: campaign/), PARAM_PREFIX
    - Fallbacks: CAMPAIGN_STATE_BUCKET, CAMPAIGN_STATE_PREFIX, CAMPAIGN_PARAM_PREFIX
    - SSM under PARAM_PREFIX must provide: fernet_key

    The event's "authorized" field lists the identities whose signatures were
    verified upstream (JSON array, CSV string, or list).
    """
    bucket = _getenv(ENV_STATE_BUCKET) or _getenv(FALLBACK_ENV_STATE_BUCKET)
    prefix = _getenv(ENV_STATE_PREFIX) or _getenv(FALLBACK_ENV_STATE_PREFIX, DEFAULT_PREFIX)
    param_prefix = _getenv(ENV_PARAM_PREFIX) or _getenv(FALLBACK_ENV_PARAM_PREFIX)

    bucket = _require(bucket, ENV_STATE_BUCKET)
    param_prefix = _require(param_prefix, ENV_PARAM_PREFIX)

    params = _load_ssm_params(param_prefix, ["fernet_key"])
    fernet_key = _require(params.get("fernet_key"), f"{param_prefix}fernet_key")

    store = S3Store(bucket=bucket, prefix=prefix, fernet_key=fernet_key)

    authorized = event.get("authorized") if isinstance(event, dict) else None
    if isinstance(authorized, list):
        verified = {a for a in authorized if isinstance(a, str) and a}
    else:
        verified = parse_identities(authorized)

    logger.info("Invocation received with %d verified identities", len(verified))
    return invoke(event, store=store, auth=InvocationAuth(verified))
