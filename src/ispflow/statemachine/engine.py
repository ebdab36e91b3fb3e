"""
Generic transition-table evaluator.

A lifecycle is described entirely by its table: a mapping of
``(current state, transition) -> next state``. Adding a lifecycle means
building another ``StateMachine`` instance, not adding a branch here.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Generic, TypeVar

from ispflow.exceptions import InvalidTransitionError, TransitionTableError

S = TypeVar("S", bound=Enum)
T = TypeVar("T", bound=Enum)


class StateMachine(Generic[S, T]):
    """
    Immutable state machine over a state enum and a transition enum.

    The table is copied into read-only mappings at construction. Pairs that
    are not in the table are illegal; there is no fallback.

    Example:
        >>> machine = StateMachine(
        ...     "Light",
        ...     LightState,
        ...     LightTransition,
        ...     {LightState.OFF: {LightTransition.SWITCH: LightState.ON}},
        ... )
        >>> machine.transition(LightState.OFF, LightTransition.SWITCH)
        <LightState.ON: 'on'>
    """

    def __init__(
        self,
        name: str,
        state_type: type[S],
        transition_type: type[T],
        table: Mapping[S, Mapping[T, S]],
    ) -> None:
        self._name = name
        self._state_type = state_type
        self._transition_type = transition_type

        frozen: dict[S, Mapping[T, S]] = {}
        for state, edges in table.items():
            if not isinstance(state, state_type):
                raise TransitionTableError(
                    f"{name}: {state!r} is not a {state_type.__name__} member"
                )
            for transition, target in edges.items():
                if not isinstance(transition, transition_type):
                    raise TransitionTableError(
                        f"{name}: {transition!r} is not a {transition_type.__name__} member"
                    )
                if not isinstance(target, state_type):
                    raise TransitionTableError(
                        f"{name}: {state.value} --{transition.value}--> {target!r} "
                        f"targets a value outside {state_type.__name__}"
                    )
            frozen[state] = MappingProxyType(dict(edges))

        # States absent from the table are terminal
        for state in state_type:
            frozen.setdefault(state, MappingProxyType({}))

        self._table: Mapping[S, Mapping[T, S]] = MappingProxyType(frozen)

    @property
    def name(self) -> str:
        return self._name

    @property
    def states(self) -> frozenset[S]:
        return frozenset(self._state_type)

    @property
    def table(self) -> Mapping[S, Mapping[T, S]]:
        """Read-only view of the transition table."""
        return self._table

    def can_transition(self, state: S, transition: T) -> bool:
        return transition in self._table.get(state, {})

    def transition(self, state: S, transition: T) -> S:
        """
        Return the state reached by applying ``transition`` to ``state``.

        Pure: nothing is mutated, the caller assigns the result.

        Raises:
            InvalidTransitionError: If the pair is not in the table
        """
        target = self._table.get(state, {}).get(transition)
        if target is None:
            raise InvalidTransitionError(self._name, state, transition)
        return target

    def valid_transitions(self, state: S) -> frozenset[T]:
        return frozenset(self._table.get(state, {}))

    def is_terminal(self, state: S) -> bool:
        return not self._table.get(state)

    def __repr__(self) -> str:
        return f"StateMachine(name={self._name!r}, states={len(self._table)})"


__all__ = ["StateMachine"]
