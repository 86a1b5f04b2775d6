from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from echo_proxy.models import CLIENT_IDENTITIES
from echo_proxy.rotation import ClientRotation, RoundRobin


def test_round_robin_visits_items_in_order_and_wraps():
    cursor = RoundRobin(["a", "b", "c"])

    assert [cursor.next() for _ in range(7)] == ["a", "b", "c", "a", "b", "c", "a"]


def test_round_robin_honors_start_position():
    cursor = RoundRobin(["a", "b", "c"], start=4)

    assert cursor.position == 1
    assert cursor.next() == "b"
    assert cursor.position == 2


def test_round_robin_rejects_empty_pool():
    with pytest.raises(ValueError):
        RoundRobin([])


def test_consecutive_picks_differ_when_pool_has_several_identities():
    rotation = ClientRotation(["android", "web", "tv"])
    picks = [rotation.next() for _ in range(6)]

    assert all(a != b for a, b in zip(picks, picks[1:]))


def test_default_rotation_uses_supported_client_identities():
    rotation = ClientRotation()

    assert len(rotation) == len(CLIENT_IDENTITIES)
    assert rotation.next() == CLIENT_IDENTITIES[0]
