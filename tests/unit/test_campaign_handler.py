from __future__ import annotations

from typing import Dict, Optional

import pytest

from common.auth import InvocationAuth
from common.errors import AuthorizationError, CampaignNotInitialized, InvalidArgument, MilestoneLookupError
from state.memory_store import MemoryStore


def _init_event(percentages=(30, 40, 30)):
    return {
        "operation": "initialize",
        "args": {"creator": "GC", "admin": "GA", "targetAmount": 100, "milestonePercentages": list(percentages)},
    }


def test_invoke_full_flow():
    from campaign.handler import invoke

    store = MemoryStore()
    assert invoke(_init_event(), store=store, auth=InvocationAuth(["GC", "GA"])) == {"ok": True, "result": None}
    assert invoke(
        {"operation": "donate", "args": {"donor": "GD", "amount": 100}}, store=store, auth=InvocationAuth(["GD"])
    )["ok"]
    assert invoke({"operation": "completeMilestone", "args": {"milestoneIndex": 0}}, store=store, auth=InvocationAuth(["GC"]))["ok"]
    assert invoke({"operation": "approve_milestone", "args": {"milestone_index": 0}}, store=store, auth=InvocationAuth(["GA"]))["ok"]

    out = invoke({"operation": "getCampaignDetails"}, store=store, auth=InvocationAuth())
    assert out["ok"] is True
    view = out["result"]
    assert view["current_amount"] == 100
    assert view["milestones"][0] == {"percentage": 30, "status": "approved", "completed": True, "approved": True}
    assert view["milestones"][1]["status"] == "pending"


def test_invoke_maps_business_errors():
    from campaign.handler import invoke

    store = MemoryStore()
    out = invoke(_init_event((30, 30)), store=store, auth=InvocationAuth.mock_all())
    assert out["ok"] is False
    assert out["error"] == "InvalidMilestonePercentages"
    assert out["code"] == 1

    invoke(_init_event(), store=store, auth=InvocationAuth.mock_all())
    out = invoke({"operation": "approveMilestone", "args": {"milestoneIndex": 2}}, store=store, auth=InvocationAuth(["GA"]))
    assert (out["ok"], out["error"], out["code"]) == (False, "MilestoneNotCompleted", 4)


def test_invoke_lets_fatal_aborts_propagate():
    from campaign.handler import invoke

    store = MemoryStore()
    with pytest.raises(CampaignNotInitialized):
        invoke({"operation": "getCampaignDetails"}, store=store, auth=InvocationAuth())

    invoke(_init_event(), store=store, auth=InvocationAuth.mock_all())
    with pytest.raises(AuthorizationError):
        invoke({"operation": "completeMilestone", "args": {"milestoneIndex": 0}}, store=store, auth=InvocationAuth(["GA"]))
    with pytest.raises(MilestoneLookupError):
        invoke({"operation": "completeMilestone", "args": {"milestoneIndex": 9}}, store=store, auth=InvocationAuth(["GC"]))
    with pytest.raises(InvalidArgument):
        invoke({"operation": "refund"}, store=store, auth=InvocationAuth())
    with pytest.raises(InvalidArgument):
        invoke({"operation": "donate", "args": {"donor": "GD"}}, store=store, auth=InvocationAuth(["GD"]))


class _FakeS3Store:
    instances = []

    def __init__(self, *, bucket: str, prefix: str, fernet_key: str) -> None:
        self.bucket = bucket
        self.prefix = prefix
        self.fernet_key = fernet_key
        self._inner = MemoryStore()
        _FakeS3Store.instances.append(self)

    def has(self, key):
        return self._inner.has(key)

    def get(self, key):
        return self._inner.get(key)

    def set(self, key, value, *, if_match=None):
        return self._inner.set(key, value, if_match=if_match)


def _patch_env(monkeypatch: pytest.MonkeyPatch, *, fernet_key: Optional[str] = "F" * 44) -> None:
    from campaign import handler

    def fake_load_ssm_params(prefix: str, names) -> Dict[str, Optional[str]]:  # noqa: ARG001
        return {"fernet_key": fernet_key}

    monkeypatch.setenv("STATE_BUCKET", "test-bucket")
    monkeypatch.delenv("STATE_PREFIX", raising=False)
    monkeypatch.delenv("CAMPAIGN_STATE_PREFIX", raising=False)
    monkeypatch.setenv("PARAM_PREFIX", "/campaign/dev/")
    monkeypatch.setattr(handler, "_load_ssm_params", fake_load_ssm_params)
    monkeypatch.setattr(handler, "S3Store", _FakeS3Store)


def test_lambda_handler_builds_store_and_auth(monkeypatch):
    from campaign import handler

    _patch_env(monkeypatch)
    _FakeS3Store.instances = []

    event = dict(_init_event(), authorized=["GC", "GA"])
    assert handler.lambda_handler(event, None) == {"ok": True, "result": None}

    store = _FakeS3Store.instances[-1]
    assert (store.bucket, store.prefix, store.fernet_key) == ("test-bucket", "campaign/", "F" * 44)

    with pytest.raises(AuthorizationError):
        handler.lambda_handler(dict(_init_event(), authorized="GC"), None)


def test_lambda_handler_missing_config(monkeypatch):
    from campaign import handler

    _patch_env(monkeypatch, fernet_key=None)
    with pytest.raises(RuntimeError, match="fernet_key"):
        handler.lambda_handler(_init_event(), None)

    monkeypatch.delenv("STATE_BUCKET")
    monkeypatch.delenv("CAMPAIGN_STATE_BUCKET", raising=False)
    with pytest.raises(RuntimeError, match="STATE_BUCKET"):
        handler.lambda_handler(_init_event(), None)
