"""
Tests for the hourly distribution job.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest

from daily_facts.core.clock import UTC, FixedClock
from daily_facts.models import DeliveryStatus, Difficulty, InteractionUpdate
from daily_facts.delivery.distribution import DistributionJob
from daily_facts.delivery.sender import NotificationContent, SendResult
from daily_facts.personalization.profile import ProfileBuilder
from daily_facts.personalization.selector import CandidateSelector


@dataclass
class StubSender:
    """Sender that records calls and fails or raises for chosen users."""

    fail_users: frozenset[str] = frozenset()
    raise_users: frozenset[str] = frozenset()
    calls: list[tuple[str, NotificationContent]] = field(default_factory=list)

    async def send(self, user_id: str, content: NotificationContent) -> SendResult:
        self.calls.append((user_id, content))
        if user_id in self.raise_users:
            raise RuntimeError("push gateway down")
        if user_id in self.fail_users:
            return SendResult(delivered=False, error_code="http_503", error="unavailable", status_code=503)
        return SendResult(delivered=True, status_code=200)


def _job(repo, sender, clock, rng, **kwargs) -> DistributionJob:
    selector = CandidateSelector(repo, ProfileBuilder(repo, clock=clock), clock=clock)
    return DistributionJob(
        repository=repo,
        sender=sender,
        selector=selector,
        clock=clock,
        rng=rng,
        **kwargs,
    )


async def _seed_user(repo, make_user, user_id: str, **overrides) -> None:
    overrides.setdefault("daily_notification_time", "12:00")
    await repo.save_user(make_user(user_id, **overrides))
    await repo.set_category_preference(user_id, "science")


async def _seed_items(repo, make_item, count: int = 3) -> None:
    for i in range(count):
        await repo.save_item(make_item(f"sci{i}", "science"))


# =============================================================================
# Due-ness
# =============================================================================


class TestIsDue:
    def test_local_time_converted_to_reference_hour(self, repo, make_user, clock, seeded_rng):
        job = _job(repo, StubSender(), clock, seeded_rng)
        user = make_user("karachi", timezone="Asia/Karachi", daily_notification_time="09:00")

        due_at = datetime(2024, 3, 6, 4, 0, tzinfo=UTC)
        assert job.is_due(user, due_at, 4) is True
        assert job.is_due(user, due_at + timedelta(hours=1), 5) is False

    def test_dst_shift_moves_the_reference_hour(self, repo, make_user, clock, seeded_rng):
        job = _job(repo, StubSender(), clock, seeded_rng)
        user = make_user("nyc", timezone="America/New_York", daily_notification_time="09:00")

        assert job.is_due(user, datetime(2024, 3, 8, 14, 0, tzinfo=UTC), 14) is True
        assert job.is_due(user, datetime(2024, 3, 11, 13, 0, tzinfo=UTC), 13) is True

    def test_weekend_opt_out(self, repo, make_user, clock, seeded_rng):
        job = _job(repo, StubSender(), clock, seeded_rng)
        saturday = datetime(2024, 3, 9, 12, 0, tzinfo=UTC)
        weekday_only = make_user("weekday", daily_notification_time="12:00", weekend_notifications=False)
        everyday = make_user("everyday", daily_notification_time="12:00")

        assert job.is_due(weekday_only, saturday, 12) is False
        assert job.is_due(everyday, saturday, 12) is True
        assert job.is_due(weekday_only, saturday - timedelta(days=3), 12) is True

    def test_invalid_time_is_never_due(self, repo, make_user, clock, seeded_rng, caplog):
        job = _job(repo, StubSender(), clock, seeded_rng)
        user = make_user("broken", daily_notification_time="noon")

        assert job.is_due(user, clock.now(), 12) is False
        assert "Invalid notification time" in caplog.text

    def test_reference_zone_other_than_utc(self, repo, make_user, clock, seeded_rng):
        job = _job(repo, StubSender(), clock, seeded_rng, reference_timezone="Asia/Karachi")
        user = make_user("utc", daily_notification_time="07:00")

        assert job.is_due(user, datetime(2024, 3, 6, 7, 0, tzinfo=UTC), 12) is True

    def test_batch_size_must_be_positive(self, repo, clock, seeded_rng):
        with pytest.raises(ValueError):
            _job(repo, StubSender(), clock, seeded_rng, batch_size=0)


# =============================================================================
# Ticks
# =============================================================================


class TestRunTick:
    async def test_sends_only_to_due_users(self, repo, make_user, make_item, seeded_rng):
        clock = FixedClock(datetime(2024, 3, 6, 4, 0, tzinfo=UTC))
        await _seed_user(repo, make_user, "karachi", timezone="Asia/Karachi", daily_notification_time="09:00")
        await _seed_user(repo, make_user, "later", daily_notification_time="18:00")
        await _seed_user(repo, make_user, "muted", notifications_enabled=False, daily_notification_time="04:00")
        await _seed_items(repo, make_item)
        sender = StubSender()

        report = await _job(repo, sender, clock, seeded_rng).run_tick()

        assert report.reference_hour == 4
        assert report.notifiable == 2
        assert report.due == 1
        assert report.sent == 1
        assert [user_id for user_id, _ in sender.calls] == ["karachi"]

        report = await _job(repo, sender, clock, seeded_rng).run_tick(clock.now() + timedelta(hours=1))
        assert report.due == 0

    async def test_successful_send_is_recorded(self, repo, make_user, make_item, clock, seeded_rng, fixed_now):
        await _seed_user(repo, make_user, "u1")
        await _seed_items(repo, make_item, count=1)

        report = await _job(repo, StubSender(), clock, seeded_rng).run_tick()

        assert report.sent == 1
        assert await repo.count_todays_notifications("u1", fixed_now) == 1
        [interaction] = await repo.find_interactions("u1")
        assert interaction.item_id == "sci0"
        assert interaction.delivery_status == DeliveryStatus.SENT
        assert interaction.delivered_at == fixed_now

    async def test_daily_cap_makes_ticks_idempotent(self, repo, make_user, make_item, clock, seeded_rng):
        await _seed_user(repo, make_user, "u1", max_notifications_per_day=1)
        await _seed_items(repo, make_item)
        job = _job(repo, StubSender(), clock, seeded_rng)

        first = await job.run_tick()
        second = await job.run_tick()

        assert first.sent == 1
        assert second.sent == 0
        assert second.skipped_cap == 1
        assert await repo.count_notifications("u1") == 1

    async def test_failed_send_is_scheduled_for_retry(
        self, repo, make_user, make_item, clock, seeded_rng, fixed_now
    ):
        await _seed_user(repo, make_user, "u1")
        await _seed_items(repo, make_item, count=1)

        report = await _job(repo, StubSender(fail_users=frozenset({"u1"})), clock, seeded_rng).run_tick()

        assert report.failed == 1
        assert await repo.find_failed_notifications(fixed_now) == []
        [record] = await repo.find_failed_notifications(fixed_now + timedelta(minutes=5))
        assert record.status == DeliveryStatus.FAILED
        assert record.retry_count == 0
        assert record.next_retry_at == fixed_now + timedelta(minutes=5)
        assert record.error_code == "http_503"
        [interaction] = await repo.find_interactions("u1")
        assert interaction.delivery_status == DeliveryStatus.FAILED

        # Failed sends don't count against the cap
        assert await repo.count_todays_notifications("u1", fixed_now) == 0

    async def test_sender_exception_becomes_failed_record(
        self, repo, make_user, make_item, clock, seeded_rng, fixed_now
    ):
        await _seed_user(repo, make_user, "u1")
        await _seed_items(repo, make_item, count=1)

        report = await _job(repo, StubSender(raise_users=frozenset({"u1"})), clock, seeded_rng).run_tick()

        assert report.failed == 1
        [record] = await repo.find_failed_notifications(fixed_now + timedelta(minutes=5))
        assert record.error_code == "sender_error"
        assert record.error_message == "push gateway down"

    async def test_one_user_error_does_not_abort_batch(
        self, repo, make_user, make_item, clock, seeded_rng
    ):
        await _seed_user(repo, make_user, "u1")
        await _seed_user(repo, make_user, "u2")
        await _seed_items(repo, make_item)
        original = repo.count_todays_notifications

        async def flaky(user_id, now):
            if user_id == "u1":
                raise RuntimeError("db hiccup")
            return await original(user_id, now)

        sender = StubSender()
        with patch.object(repo, "count_todays_notifications", side_effect=flaky):
            report = await _job(repo, sender, clock, seeded_rng).run_tick()

        assert report.errors == 1
        assert report.sent == 1
        assert report.processed == 2
        assert [user_id for user_id, _ in sender.calls] == ["u2"]

    async def test_no_content_is_skipped(self, repo, make_user, clock, seeded_rng):
        await _seed_user(repo, make_user, "u1")

        report = await _job(repo, StubSender(), clock, seeded_rng).run_tick()

        assert report.skipped_no_content == 1
        assert await repo.count_notifications() == 0

    async def test_batches_pause_between_groups(self, repo, make_user, make_item, clock, seeded_rng):
        for user_id in ("u1", "u2", "u3"):
            await _seed_user(repo, make_user, user_id)
        await _seed_items(repo, make_item)
        pauses: list[float] = []

        async def record_sleep(seconds: float) -> None:
            pauses.append(seconds)

        report = await _job(
            repo,
            StubSender(),
            clock,
            seeded_rng,
            batch_size=2,
            batch_pause_seconds=0.5,
            sleep=record_sleep,
        ).run_tick()

        assert report.sent == 3
        assert pauses == [0.5]


# =============================================================================
# Item choice
# =============================================================================


class TestChooseItem:
    async def test_personalized_pick_first(self, repo, make_user, make_item, clock, seeded_rng):
        await _seed_user(repo, make_user, "u1")
        await repo.save_item(make_item("sci-medium", "science", Difficulty.MEDIUM))
        await repo.save_item(make_item("sci-hard", "science", Difficulty.HARD))
        user = await repo.find_user("u1")

        item = await _job(repo, StubSender(), clock, seeded_rng).choose_item(user, clock.now())

        assert item is not None
        assert item.id == "sci-medium"

    async def test_unseen_items_in_user_categories(
        self, repo, make_user, make_item, clock, seeded_rng, fixed_now
    ):
        await _seed_user(repo, make_user, "u1")
        for item in (
            make_item("sci-a", "science"),
            make_item("sci-b", "science"),
            make_item("sci-seen", "science"),
            make_item("his-a", "history"),
            make_item("sci-hard", "science", Difficulty.HARD),
        ):
            await repo.save_item(item)
        await repo.upsert_interaction("u1", "sci-seen", InteractionUpdate(is_viewed=True), fixed_now)
        user = await repo.find_user("u1")
        job = _job(repo, StubSender(), clock, seeded_rng)

        with patch.object(job.selector, "select_personalized", AsyncMock(return_value=[])):
            picks = {(await job.choose_item(user, fixed_now)).id for _ in range(10)}

        assert picks <= {"sci-a", "sci-b"}

    async def test_any_recent_item_at_user_difficulty(
        self, repo, make_user, make_item, clock, seeded_rng, fixed_now
    ):
        await _seed_user(repo, make_user, "u1")
        await repo.save_item(make_item("sci-seen", "science"))
        await repo.save_item(make_item("his-new", "history"))
        await repo.save_item(make_item("his-hard", "history", Difficulty.HARD))
        await repo.upsert_interaction("u1", "sci-seen", InteractionUpdate(is_viewed=True), fixed_now)
        user = await repo.find_user("u1")
        job = _job(repo, StubSender(), clock, seeded_rng)

        with patch.object(job.selector, "select_personalized", AsyncMock(return_value=[])):
            picks = {(await job.choose_item(user, fixed_now)).id for _ in range(10)}

        assert picks <= {"sci-seen", "his-new"}

    async def test_nothing_at_difficulty(self, repo, make_user, make_item, clock, seeded_rng, fixed_now):
        await _seed_user(repo, make_user, "u1", difficulty_level=Difficulty.EXPERT)
        await repo.save_item(make_item("sci-easy", "science", Difficulty.EASY))
        user = await repo.find_user("u1")
        job = _job(repo, StubSender(), clock, seeded_rng)

        with patch.object(job.selector, "select_personalized", AsyncMock(return_value=[])):
            assert await job.choose_item(user, fixed_now) is None

    async def test_fallback_query_failure_returns_none(
        self, repo, make_user, clock, seeded_rng, fixed_now, caplog
    ):
        await _seed_user(repo, make_user, "u1")
        user = await repo.find_user("u1")
        job = _job(repo, StubSender(), clock, seeded_rng)

        with (
            patch.object(job.selector, "select_personalized", AsyncMock(return_value=[])),
            patch.object(repo, "find_eligible_items", side_effect=RuntimeError("db down")),
        ):
            assert await job.choose_item(user, fixed_now) is None

        assert "Error getting fallback fact for user u1" in caplog.text
