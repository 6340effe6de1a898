"""Discriminated results returned by workflow checks.

Checks never raise for "not allowed right now"; they return one of these values so
callers can branch (or disable a control) on truthiness. Only a record that cannot be
typed at all raises MalformedRecord.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from sigap.workflow.types import Action, BlockingReason


class MalformedRecord(ValueError):
    """Raised when a backend record is missing fields the workflow needs to type it."""

    def __init__(self, message: str, record: Optional[dict] = None):
        super().__init__(message)
        self.record = record


@dataclass(frozen=True)
class Allowed:
    ok = True

    def __bool__(self):
        return True


@dataclass(frozen=True)
class InvalidTransition:
    attempted: str
    current: str
    reason: str = 'not allowed'
    ok = False

    def __bool__(self):
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {'code': 'invalid_transition', 'action': self.attempted, 'current': self.current, 'reason': self.reason}


@dataclass(frozen=True)
class ValidationFailed:
    field: str
    message: str = ''
    ok = False

    def __bool__(self):
        return False

    def to_dict(self) -> Dict[str, Any]:
        return {'code': 'validation_failed', 'field': self.field, 'reason': self.message or f'{self.field} required'}


ALLOWED = Allowed()


@dataclass(frozen=True)
class CompletionCheck:
    ok: bool
    blocking_reason: Optional[BlockingReason] = None
    is_unrepairable: bool = False

    def __bool__(self):
        return self.ok


@dataclass(frozen=True)
class WorkflowDecision:
    allowed_actions: FrozenSet[Action] = field(default_factory=frozenset)
    can_complete: bool = False
    blocking_reason: Optional[BlockingReason] = None
    is_unrepairable: bool = False

    def allows(self, action: Action) -> bool:
        return action in self.allowed_actions

    def to_dict(self) -> Dict[str, Any]:
        return {
            'allowed_actions': sorted(a.value for a in self.allowed_actions),
            'can_complete': self.can_complete,
            'blocking_reason': self.blocking_reason.value if self.blocking_reason else None,
            'is_unrepairable': self.is_unrepairable,
        }


__all__ = ['MalformedRecord', 'Allowed', 'ALLOWED', 'InvalidTransition', 'ValidationFailed', 'CompletionCheck', 'WorkflowDecision']
