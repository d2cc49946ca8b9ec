from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

from relflow.core.result import Err, Ok, Result
from relflow.release.errors import ReleaseError

S = TypeVar("S")


@dataclass(frozen=True, slots=True)
class StepAdvance[S]:
    state: S


@dataclass(frozen=True, slots=True)
class StepFinish:
    pass


StepOutcome = StepAdvance[S] | StepFinish
StepHandler = Callable[[S], Result[StepOutcome[S], ReleaseError]]


FINISH = StepFinish()


def advance[S](state: S) -> StepAdvance[S]:
    return StepAdvance(state=state)


def run_state_machine[S, K](
    *,
    initial_state: S,
    get_step: Callable[[S], K],
    handlers: Mapping[K, StepHandler[S]],
    fail: Callable[[S, ReleaseError], S],
    on_enter: Callable[[S], None],
) -> Result[S, ReleaseError]:
    """Drive ``initial_state`` through ``handlers`` until one finishes.

    A handler error does not stop the loop: ``fail`` turns it into the
    next state, whose handler is expected to finish. Only a step with no
    handler aborts, since that is a wiring bug rather than a run outcome.
    """
    current = initial_state

    while True:
        step = get_step(current)
        handler = handlers.get(step)
        if handler is None:
            return Err(
                ReleaseError(
                    kind="invalid_input",
                    message=f"unknown pipeline stage: {step}",
                )
            )

        outcome = handler(current)
        if isinstance(outcome, Err):
            current = fail(current, outcome.error)
        elif isinstance(outcome.value, StepFinish):
            return Ok(current)
        else:
            current = outcome.value.state
        on_enter(current)
