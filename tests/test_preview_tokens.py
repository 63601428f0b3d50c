# tests/test_preview_tokens.py

from __future__ import annotations

import pytest

from backend.models.task_model import Attachment
from backend.services.preview_tokens import PreviewTokenRegistry
from backend.utils.errors import PreviewTokenExpired, PreviewTokenNotFound

from .fakes import FakeClock


def _attachment() -> Attachment:
    return Attachment(filename="1-2.pdf", original_name="plan.pdf", size=10, mimetype="application/pdf")


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def registry(clock: FakeClock) -> PreviewTokenRegistry:
    return PreviewTokenRegistry(ttl_seconds=3600, sweep_interval=None, clock=clock)


def test_tokens_are_long_and_distinct(registry) -> None:
    att = _attachment()
    first = registry.issue("t1", att)
    second = registry.issue("t1", att)

    assert first != second
    # 32 random bytes, url-safe base64 without padding.
    assert len(first) >= 43
    assert len(registry) == 2


def test_resolve_before_expiry_is_repeatable(registry, clock) -> None:
    att = _attachment()
    token = registry.issue("t1", att)

    clock.advance(59 * 60)
    for _ in range(3):
        grant = registry.resolve(token)
        assert grant.task_id == "t1"
        assert grant.attachment == att
        assert grant.attachment_id == str(att.id)
    assert token in registry


def test_expired_token_is_purged_on_first_access(registry, clock) -> None:
    token = registry.issue("t1", _attachment())

    clock.advance(61 * 60)
    with pytest.raises(PreviewTokenExpired):
        registry.resolve(token)
    with pytest.raises(PreviewTokenNotFound):
        registry.resolve(token)
    assert len(registry) == 0


def test_exact_expiry_instant_still_resolves(registry, clock) -> None:
    token = registry.issue("t1", _attachment(), ttl=10)
    clock.advance(10)
    assert registry.resolve(token).task_id == "t1"


def test_unknown_token(registry) -> None:
    with pytest.raises(PreviewTokenNotFound):
        registry.resolve("does-not-exist")


def test_purge_expired_drops_only_stale_entries(registry, clock) -> None:
    old = registry.issue("t1", _attachment(), ttl=60)
    fresh = registry.issue("t1", _attachment(), ttl=3600)

    clock.advance(120)
    assert registry.purge_expired() == 1
    assert old not in registry
    assert fresh in registry


def test_issue_sweeps_periodically(clock) -> None:
    registry = PreviewTokenRegistry(ttl_seconds=60, sweep_interval=300, clock=clock)
    stale = [registry.issue("t1", _attachment()) for _ in range(5)]

    clock.advance(301)
    registry.issue("t2", _attachment())

    assert len(registry) == 1
    assert not any(t in registry for t in stale)


def test_revoke_and_clear(registry) -> None:
    token = registry.issue("t1", _attachment())
    assert registry.revoke(token) is True
    assert registry.revoke(token) is False

    registry.issue("t1", _attachment())
    registry.clear()
    assert len(registry) == 0
