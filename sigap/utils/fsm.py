"""Small finite state machine helper for status lifecycles.

Used by the work-order lifecycle and the Zoom review lifecycle:
    from sigap.utils.fsm import TransitionValidator
    WO_FSM = TransitionValidator({
        'requested': {'in_procurement', 'unsuccessful'},
        'in_procurement': {'completed', 'unsuccessful'},
        'completed': set(),
        'unsuccessful': set(),
    }, field_name='work order status')
    result = WO_FSM.check(current, target)   # Allowed | InvalidTransition

check() never raises; routes turn a failed result into 409 through utils.validation.ensure().
"""
from __future__ import annotations
from typing import Dict, FrozenSet, Iterable, Mapping

from sigap.workflow.results import ALLOWED, InvalidTransition


def _key(value) -> str:
    return getattr(value, 'value', value)


class TransitionValidator:
    def __init__(self, graph: Mapping[str, Iterable[str]], field_name: str = 'status'):
        self.graph: Dict[str, FrozenSet[str]] = {_key(k): frozenset(_key(t) for t in v) for k, v in graph.items()}
        self.field_name = field_name

    def targets(self, current) -> FrozenSet[str]:
        return self.graph.get(_key(current), frozenset())

    def is_terminal(self, current) -> bool:
        return not self.targets(current)

    def can_transition(self, current, target) -> bool:
        return _key(target) in self.targets(current)

    def check(self, current, target):
        cur, tgt = _key(current), _key(target)
        if cur not in self.graph:
            return InvalidTransition(tgt, cur, f'unknown {self.field_name} {cur}')
        if self.is_terminal(cur):
            return InvalidTransition(tgt, cur, f'{self.field_name} {cur} is terminal')
        if tgt not in self.graph[cur]:
            return InvalidTransition(tgt, cur, f'invalid {self.field_name} transition {cur} -> {tgt}')
        return ALLOWED


__all__ = ['TransitionValidator']
