"""Tests for per-key leases."""

from __future__ import annotations

import pytest

from studyflow.leases import KeyedLeases


class TestKeyedLeases:
    def test_acquire_is_exclusive(self) -> None:
        leases = KeyedLeases()
        assert leases.acquire("sniper-1") is True
        assert leases.acquire("sniper-1") is False
        assert leases.acquire("sniper-2") is True
        assert len(leases) == 2

    def test_release(self) -> None:
        leases = KeyedLeases()
        leases.acquire("a")
        leases.release("a")
        assert not leases.is_held("a")
        leases.release("a")  # releasing twice is harmless

    def test_hold_releases_on_exit(self) -> None:
        leases = KeyedLeases()
        with leases.hold("a") as acquired:
            assert acquired is True
            assert leases.is_held("a")
        assert not leases.is_held("a")

    def test_hold_releases_on_error(self) -> None:
        leases = KeyedLeases()
        with pytest.raises(ValueError), leases.hold("a"):
            raise ValueError("boom")
        assert not leases.is_held("a")

    def test_nested_hold_does_not_release_outer(self) -> None:
        leases = KeyedLeases()
        with leases.hold("a") as outer:
            with leases.hold("a") as inner:
                assert outer is True
                assert inner is False
            assert leases.is_held("a")
        assert not leases.is_held("a")
