"""Tests for the timer state machine."""

from datetime import datetime, timedelta, timezone

import pytest

from jira_worklog_sync.errors import AlreadyPaused, NoActiveTimer, NotPaused
from jira_worklog_sync.ledger import LedgerStore, SyncStatus
from jira_worklog_sync.timer import (
    Idle,
    Paused,
    Running,
    TimerService,
    elapsed_seconds,
    pause,
    resume,
    round_up_to_minute,
    start,
    stop,
)

UTC_MINUS_5 = timezone(timedelta(hours=-5))
NINE = datetime(2024, 3, 1, 9, 0, tzinfo=UTC_MINUS_5)


@pytest.fixture
def service(ledger: LedgerStore, clock) -> TimerService:
    return TimerService(ledger, clock=clock)


class TestRounding:
    """Test duration rounding."""

    @pytest.mark.parametrize(
        "seconds, rounded",
        [(0, 0), (1, 60), (59, 60), (60, 60), (61, 120), (125, 180), (3600, 3600)],
    )
    def test_round_up_to_minute(self, seconds: int, rounded: int) -> None:
        """Test that any started minute counts as a whole minute."""
        assert round_up_to_minute(seconds) == rounded


class TestTransitions:
    """Test the pure transition functions."""

    def test_start_from_idle(self) -> None:
        """Test that starting from idle finalizes nothing."""
        transition = start(Idle(), "OPS-12", NINE)

        assert transition.state == Running(issue_key="OPS-12", started_at=NINE)
        assert transition.finalized is None

    def test_start_while_running_finalizes(self) -> None:
        """Test that starting again records the previous timer."""
        running = Running(issue_key="OPS-12", started_at=NINE, description="Deploy")
        later = NINE + timedelta(minutes=10)

        transition = start(running, "OPS-13", later)

        assert transition.state == Running(issue_key="OPS-13", started_at=later)
        assert transition.finalized.issue_key == "OPS-12"
        assert transition.finalized.duration_seconds == 600
        assert transition.finalized.description == "Deploy"
        assert transition.finalized.sync_status == SyncStatus.PENDING

    def test_pause_banks_elapsed(self) -> None:
        """Test that pausing banks the running interval."""
        running = Running(issue_key="OPS-12", started_at=NINE, accumulated_secs=30)
        now = NINE + timedelta(seconds=45)

        paused = pause(running, now).state

        assert paused == Paused(
            issue_key="OPS-12", started_at=NINE, accumulated_secs=75, paused_at=now
        )
        assert elapsed_seconds(paused, now + timedelta(hours=1)) == 75

    def test_resume_keeps_banked_time(self) -> None:
        """Test that resuming restarts the interval and keeps the bank."""
        paused = Paused(issue_key="OPS-12", started_at=NINE, accumulated_secs=75, paused_at=NINE)
        now = NINE + timedelta(minutes=5)

        running = resume(paused, now).state

        assert running == Running(issue_key="OPS-12", started_at=now, accumulated_secs=75)

    def test_stop_paused_ends_now(self) -> None:
        """Test that a paused timer is recorded as ending at stop time."""
        paused = Paused(issue_key="OPS-12", started_at=NINE, accumulated_secs=61, paused_at=NINE)
        now = NINE + timedelta(hours=1)

        transition = stop(paused, now)

        assert transition.state == Idle()
        assert transition.finalized.duration_seconds == 120
        assert transition.finalized.started_at == "2024-03-01T09:58:00-05:00"

    def test_negative_elapsed_is_zero(self) -> None:
        """Test that a clock going backwards yields an empty entry."""
        running = Running(issue_key="OPS-12", started_at=NINE)

        transition = stop(running, NINE - timedelta(seconds=30))

        assert transition.finalized.duration_seconds == 0

    def test_invalid_transitions(self) -> None:
        """Test the errors of impossible transitions."""
        running = Running(issue_key="OPS-12", started_at=NINE)
        paused = Paused(issue_key="OPS-12", started_at=NINE, accumulated_secs=0, paused_at=NINE)

        with pytest.raises(NoActiveTimer):
            pause(Idle(), NINE)
        with pytest.raises(NoActiveTimer):
            resume(Idle(), NINE)
        with pytest.raises(NoActiveTimer):
            stop(Idle(), NINE)
        with pytest.raises(AlreadyPaused):
            pause(paused, NINE)
        with pytest.raises(NotPaused):
            resume(running, NINE)


class TestTimerService:
    """Test the persisted timer."""

    async def test_idle_by_default(self, service: TimerService) -> None:
        """Test that a fresh ledger has no timer."""
        assert await service.get_state() == Idle()

    @pytest.mark.parametrize("seconds, recorded", [(1, 60), (60, 60), (125, 180)])
    async def test_start_stop_records_rounded_entry(
        self, service: TimerService, ledger: LedgerStore, clock, seconds: int, recorded: int
    ) -> None:
        """Test that stopping records a pending entry ending now."""
        await service.start("OPS-12")
        clock.advance(seconds)

        stopped = await service.stop()

        entry = await ledger.get_worklog(stopped.id)
        assert stopped.duration_seconds == recorded
        assert entry.duration_seconds == recorded
        assert entry.issue_key == "OPS-12"
        assert entry.sync_status == SyncStatus.PENDING
        expected_start = clock.now - timedelta(seconds=recorded)
        assert entry.started_at == expected_start.isoformat(timespec="seconds")
        assert await service.get_state() == Idle()

    async def test_immediate_stop_records_zero(self, service: TimerService, ledger: LedgerStore) -> None:
        """Test that stopping right away records an empty entry."""
        await service.start("OPS-12")

        stopped = await service.stop()

        assert stopped.duration_seconds == 0
        assert (await ledger.get_worklog(stopped.id)).started_at == "2024-03-01T09:00:00-05:00"

    async def test_pause_resume_conserves_time(self, service: TimerService, clock) -> None:
        """Test that paused time is not counted."""
        await service.start("OPS-12")
        clock.advance(30)
        paused = await service.pause()
        clock.advance(900)
        await service.resume()
        clock.advance(20)

        stopped = await service.stop()

        assert paused.accumulated_secs == 30
        assert stopped.duration_seconds == 60

    async def test_state_survives_reload(self, service: TimerService, ledger: LedgerStore, clock) -> None:
        """Test that the persisted timer is read back."""
        await service.start("OPS-12")
        await service.update_description("Deploy")
        clock.advance(30)
        await service.pause()

        state = await TimerService(ledger, clock=clock).get_state()

        assert isinstance(state, Paused)
        assert state.issue_key == "OPS-12"
        assert state.accumulated_secs == 30
        assert state.description == "Deploy"
        assert state.paused_at == clock.now

    async def test_start_while_running_creates_one_entry(
        self, service: TimerService, ledger: LedgerStore, clock
    ) -> None:
        """Test that switching issues records the previous timer once."""
        await service.start("OPS-12")
        clock.advance(600)

        running = await service.start("OPS-13")

        entries = await ledger.list_worklogs()
        assert len(entries) == 1
        assert entries[0].issue_key == "OPS-12"
        assert entries[0].duration_seconds == 600
        assert running.issue_key == "OPS-13"
        assert (await service.get_state()).issue_key == "OPS-13"

    async def test_description_is_carried_to_entry(
        self, service: TimerService, ledger: LedgerStore, clock
    ) -> None:
        """Test that the timer description becomes the entry description."""
        await service.start("OPS-12")
        await service.update_description("Rotate certs")
        clock.advance(90)

        stopped = await service.stop()

        assert (await ledger.get_worklog(stopped.id)).description == "Rotate certs"

    async def test_errors_leave_state_unchanged(self, service: TimerService, ledger: LedgerStore) -> None:
        """Test that failing transitions change nothing."""
        with pytest.raises(NoActiveTimer):
            await service.stop()
        with pytest.raises(NoActiveTimer):
            await service.update_description("x")

        await service.start("OPS-12")
        with pytest.raises(NotPaused):
            await service.resume()
        await service.pause()
        with pytest.raises(AlreadyPaused):
            await service.pause()

        assert isinstance(await service.get_state(), Paused)
        assert await ledger.list_worklogs() == []
