from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

from gitrel.core.result import Err, Ok, Result
from gitrel.services.release.errors import ReleaseError

S = TypeVar("S")


@dataclass(frozen=True, slots=True)
class StepAdvance[S]:
    session: S


@dataclass(frozen=True, slots=True)
class StepFinish[S]:
    session: S


StepOutcome = StepAdvance[S] | StepFinish[S]
StepHandler = Callable[[S], Result[StepOutcome[S], ReleaseError]]
GetStep = Callable[[S], str]
OnTransition = Callable[[S], None]


def advance[S](session: S) -> StepAdvance[S]:
    return StepAdvance(session=session)


def finish[S](session: S) -> StepFinish[S]:
    return StepFinish(session=session)


def run_state_machine(
    *,
    initial_state: S,
    get_step: GetStep[S],
    handlers: Mapping[str, StepHandler[S]],
    on_transition: OnTransition[S] | None = None,
) -> Result[S, ReleaseError]:
    """Drive `handlers` from `initial_state` until one finishes or fails.

    `on_transition` sees every session a handler advances to, and the
    final one.
    """
    current = initial_state

    while True:
        step = get_step(current)
        handler = handlers.get(step)
        if handler is None:
            return Err(
                ReleaseError(
                    kind="git_failed",
                    message=f"no handler for release state: {step}",
                )
            )

        outcome = handler(current)
        if isinstance(outcome, Err):
            return outcome

        current = outcome.value.session
        if on_transition is not None:
            on_transition(current)

        if isinstance(outcome.value, StepFinish):
            return Ok(current)
