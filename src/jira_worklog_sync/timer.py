"""Timer state machine.

The timer is one of three variants: ``Idle`` (no row stored), ``Running`` or
``Paused``. Transitions are pure functions returning the next variant plus,
when the timer is finalized, the ledger entry to insert. ``TimerService``
loads the stored variant, applies a transition and persists the outcome in a
single transaction.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from jira_worklog_sync.errors import AlreadyPaused, NoActiveTimer, NotPaused
from jira_worklog_sync.ledger import LedgerStore, NewWorklog
from jira_worklog_sync.ledger.models import ActiveTimerRow
from jira_worklog_sync.utils.timefmt import now_local, parse_stored, to_stored

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Running:
    issue_key: str
    started_at: datetime
    accumulated_secs: int = 0
    description: str = ""


@dataclass(frozen=True)
class Paused:
    issue_key: str
    started_at: datetime
    accumulated_secs: int
    paused_at: datetime
    description: str = ""


TimerState = Idle | Running | Paused


@dataclass(frozen=True)
class Transition:
    """Next timer variant and the entry produced by finalizing the previous one."""

    state: TimerState
    finalized: NewWorklog | None = None


@dataclass(frozen=True)
class StoppedWorklog:
    id: int
    issue_key: str
    duration_seconds: int


def round_up_to_minute(seconds: int) -> int:
    """Round up to a whole minute; zero stays zero."""
    if seconds <= 0:
        return 0
    return ((seconds + 59) // 60) * 60


def elapsed_seconds(state: TimerState, now: datetime) -> int:
    """Seconds banked so far, including the running interval."""
    if isinstance(state, Running):
        return state.accumulated_secs + int((now - state.started_at).total_seconds())
    if isinstance(state, Paused):
        return state.accumulated_secs
    return 0


def finalize(state: Running | Paused, now: datetime) -> NewWorklog:
    """Turn a timer into a pending ledger entry that ends at ``now``."""
    total = round_up_to_minute(max(elapsed_seconds(state, now), 0))
    return NewWorklog(
        issue_key=state.issue_key,
        started_at=to_stored(now - timedelta(seconds=total)),
        duration_seconds=total,
        description=state.description,
    )


def start(state: TimerState, issue_key: str, now: datetime) -> Transition:
    finalized = None if isinstance(state, Idle) else finalize(state, now)
    return Transition(Running(issue_key=issue_key, started_at=now), finalized)


def pause(state: TimerState, now: datetime) -> Transition:
    if isinstance(state, Idle):
        raise NoActiveTimer()
    if isinstance(state, Paused):
        raise AlreadyPaused()
    return Transition(
        Paused(
            issue_key=state.issue_key,
            started_at=state.started_at,
            accumulated_secs=elapsed_seconds(state, now),
            paused_at=now,
            description=state.description,
        )
    )


def resume(state: TimerState, now: datetime) -> Transition:
    if isinstance(state, Idle):
        raise NoActiveTimer()
    if isinstance(state, Running):
        raise NotPaused()
    return Transition(
        Running(
            issue_key=state.issue_key,
            started_at=now,
            accumulated_secs=state.accumulated_secs,
            description=state.description,
        )
    )


def stop(state: TimerState, now: datetime) -> Transition:
    if isinstance(state, Idle):
        raise NoActiveTimer()
    return Transition(Idle(), finalize(state, now))


def describe(state: TimerState, text: str) -> Transition:
    if isinstance(state, Idle):
        raise NoActiveTimer()
    return Transition(replace(state, description=text))


def _state_from_row(row: ActiveTimerRow | None) -> TimerState:
    if row is None:
        return Idle()
    started_at = parse_stored(row.started_at)
    if row.is_paused:
        paused_at = parse_stored(row.paused_at) if row.paused_at else started_at
        return Paused(
            issue_key=row.issue_key,
            started_at=started_at,
            accumulated_secs=row.accumulated_secs,
            paused_at=paused_at,
            description=row.description,
        )
    return Running(
        issue_key=row.issue_key,
        started_at=started_at,
        accumulated_secs=row.accumulated_secs,
        description=row.description,
    )


class TimerService:
    """Applies timer transitions to the ledger."""

    def __init__(self, store: LedgerStore, clock: Callable[[], datetime] = now_local) -> None:
        """Initialize the timer service.

        Args:
            store: Ledger holding the timer row and receiving finalized entries.
            clock: Source of the current aware instant.
        """
        self.store = store
        self.clock = clock

    async def _apply(
        self,
        step: Callable[[TimerState, datetime], Transition],
    ) -> tuple[Transition, int | None]:
        async with self.store.transaction() as session:
            state = _state_from_row(await self.store.get_active_timer(session))
            transition = step(state, self.clock())

            entry_id = None
            if transition.finalized is not None:
                row = await self.store.insert_worklog(session, transition.finalized)
                entry_id = row.id

            new_state = transition.state
            if isinstance(new_state, Idle):
                await self.store.clear_active_timer(session)
            else:
                await self.store.save_active_timer(
                    session,
                    issue_key=new_state.issue_key,
                    started_at=new_state.started_at.isoformat(),
                    accumulated_secs=new_state.accumulated_secs,
                    is_paused=isinstance(new_state, Paused),
                    paused_at=(
                        new_state.paused_at.isoformat() if isinstance(new_state, Paused) else None
                    ),
                    description=new_state.description,
                )
        return transition, entry_id

    async def get_state(self) -> TimerState:
        """Current timer variant."""
        async with self.store.transaction() as session:
            return _state_from_row(await self.store.get_active_timer(session))

    async def start(self, issue_key: str) -> Running:
        """Start timing an issue, finalizing any timer already in progress."""
        transition, entry_id = await self._apply(lambda state, now: start(state, issue_key, now))
        if transition.finalized is not None:
            logger.info(
                f"Finalized previous timer on {transition.finalized.issue_key} "
                f"({transition.finalized.duration_seconds}s) as worklog {entry_id}"
            )
        logger.info(f"Started timer on {issue_key}")
        return transition.state

    async def pause(self) -> Paused:
        transition, _ = await self._apply(pause)
        logger.info(f"Paused timer with {transition.state.accumulated_secs}s banked")
        return transition.state

    async def resume(self) -> Running:
        transition, _ = await self._apply(resume)
        logger.info(f"Resumed timer on {transition.state.issue_key}")
        return transition.state

    async def stop(self) -> StoppedWorklog:
        """Stop the timer and record it as a pending worklog.

        Raises:
            NoActiveTimer: If no timer is running or paused.
        """
        transition, entry_id = await self._apply(stop)
        finalized = transition.finalized
        logger.info(
            f"Stopped timer on {finalized.issue_key}: worklog {entry_id}, "
            f"{finalized.duration_seconds}s"
        )
        return StoppedWorklog(
            id=entry_id,
            issue_key=finalized.issue_key,
            duration_seconds=finalized.duration_seconds,
        )

    async def update_description(self, text: str) -> None:
        """Replace the description of the running or paused timer."""
        await self._apply(lambda state, now: describe(state, text))
