"""Minimal table-driven state machine runner shared by the portal flows."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Collection, Mapping, TypeVar

S = TypeVar("S", bound=Enum)

logger = logging.getLogger(__name__)


class StateMachineError(RuntimeError):
    """Raised when a flow has no handler for a state or never terminates."""


def run_state_machine(
    flow: str,
    start: S,
    handlers: Mapping[S, Callable[[], S]],
    terminal: Collection[S],
    *,
    trace: list[S] | None = None,
    max_steps: int = 50,
) -> S:
    """Run handlers from ``start`` until a terminal state and return it.

    Each handler performs the state's work and returns the next state. Every
    visited state, terminal included, is appended to ``trace`` when given.
    """
    state = start
    for _ in range(max_steps):
        if trace is not None:
            trace.append(state)
        if state in terminal:
            return state
        handler = handlers.get(state)
        if handler is None:
            raise StateMachineError(f"{flow}: no handler for state {state.name}")
        next_state = handler()
        logger.debug("%s: %s -> %s", flow, state.name, next_state.name)
        state = next_state
    raise StateMachineError(f"{flow}: exceeded {max_steps} steps without reaching a terminal state")
