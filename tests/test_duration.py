"""Tests for duration parsing of the client's interval settings."""

import pytest
from conftest import FakeTransport, ok

from tagsync import (
    CacheStore,
    ClientSettings,
    ManualScheduler,
    SubscriptionManager,
    parse_duration,
)


class TestParseDuration:
    """Tests for parse_duration."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("250ms", 250),
            ("1s", 1000),
            ("60s", 60_000),
            ("5m", 300_000),
            ("2h", 7_200_000),
            ("1d", 86_400_000),
            (1500, 1500),
            (0, 0),
        ],
    )
    def test_accepted_forms(self, value, expected: int) -> None:
        assert parse_duration(value) == expected

    def test_surrounding_whitespace_ignored(self) -> None:
        """Test that values read from the environment may carry whitespace."""
        assert parse_duration(" 30s\n") == 30_000

    @pytest.mark.parametrize("value", ["soon", "10", "s10", "", "1.5s", -1, True])
    def test_rejected_forms(self, value) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(value)


class TestSettingsIntervals:
    """Tests for the intervals ClientSettings parses."""

    def test_retry_delays_in_seconds(self) -> None:
        settings = ClientSettings(retry_base_delay="100ms", retry_max_delay="2m")
        assert settings.retry_base_seconds == 0.1
        assert settings.retry_max_seconds == 120.0

    async def test_eviction_grace_drives_the_scheduler(
        self, store: CacheStore, transport: FakeTransport
    ) -> None:
        scheduler = ManualScheduler()
        subscriptions = SubscriptionManager(store, scheduler, eviction_grace="2m")
        transport.reply("GET", "/division", ok([]))
        await store.get_or_fetch("getDivisions")
        subscriptions.subscribe("getDivisions").unsubscribe()

        assert scheduler.pending == 1
        scheduler.advance(119_999)
        assert len(store) == 1
        scheduler.advance(1)
        assert len(store) == 0

    @pytest.mark.parametrize("field", ["eviction_grace", "tick", "retry_max_delay"])
    def test_bad_interval_rejected(self, field: str) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            ClientSettings(**{field: "forever"})
