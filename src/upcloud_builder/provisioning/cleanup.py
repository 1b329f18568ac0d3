"""Best-effort teardown pipeline.

A teardown is an ordered tuple of named ``CleanupAction`` entries. Each
action declares what a failure means for the rest of the pipeline:

  abort     -> remaining actions are recorded as ``not_run``
  continue  -> the next action still runs

The runner never raises. Every failure is reported to the UI sink, logged, and
captured in the returned ``CleanupReport``.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence

from ..errors import RemoteAPIError
from ..protocols import BuildUi

logger = logging.getLogger(__name__)

OUTCOME_OK = 'ok'
OUTCOME_SKIPPED = 'skipped'
OUTCOME_FAILED = 'failed'
OUTCOME_NOT_RUN = 'not_run'


class FailurePolicy(enum.Enum):
    ABORT = 'abort'
    CONTINUE = 'continue'


@dataclass(frozen=True, slots=True)
class CleanupAction:
    """One teardown action.

    ``run`` returns True when it did work and False when it had nothing to do.
    ``failure_message`` prefixes the error reported to the user.
    """

    name: str
    on_failure: FailurePolicy
    run: Callable[[], Awaitable[bool]]
    failure_message: str


@dataclass(frozen=True, slots=True)
class CleanupOutcome:
    name: str
    status: str
    error: Exception | None = None


@dataclass(frozen=True, slots=True)
class CleanupReport:
    """Outcome of every action in a teardown, in pipeline order."""

    outcomes: tuple[CleanupOutcome, ...] = ()

    @property
    def succeeded(self) -> bool:
        return all(
            o.status in (OUTCOME_OK, OUTCOME_SKIPPED) for o in self.outcomes
        )

    @property
    def aborted(self) -> bool:
        return any(o.status == OUTCOME_NOT_RUN for o in self.outcomes)

    def status_of(self, name: str) -> str | None:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome.status
        return None


async def run_cleanup_pipeline(
    actions: Sequence[CleanupAction],
    *,
    ui: BuildUi,
) -> CleanupReport:
    """Run ``actions`` in order, honouring each action's failure policy."""
    outcomes: list[CleanupOutcome] = []
    aborted_by: str | None = None

    for action in actions:
        if aborted_by is not None:
            outcomes.append(CleanupOutcome(action.name, OUTCOME_NOT_RUN))
            continue

        try:
            performed = await action.run()
        except Exception as exc:
            # failure_message already names the call; show only the cause.
            detail = exc.cause if isinstance(exc, RemoteAPIError) else exc
            ui.error(f'{action.failure_message}: {detail}')
            logger.warning(
                'Cleanup action %s failed',
                action.name,
                extra={'cleanup_action': action.name},
                exc_info=True,
            )
            outcomes.append(CleanupOutcome(action.name, OUTCOME_FAILED, exc))
            if action.on_failure is FailurePolicy.ABORT:
                aborted_by = action.name
            continue

        outcomes.append(
            CleanupOutcome(action.name, OUTCOME_OK if performed else OUTCOME_SKIPPED)
        )

    if aborted_by is not None:
        logger.warning(
            'Cleanup aborted after %s',
            aborted_by,
            extra={'cleanup_action': aborted_by},
        )
    return CleanupReport(tuple(outcomes))
