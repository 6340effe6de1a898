"""Request validation helpers and result-to-HTTP mapping.

Workflow checks return Allowed / InvalidTransition / ValidationFailed values; route
handlers call ensure() to turn a negative result into the standard JSON error
(409 for illegal actions, 422 for missing fields).
"""
from __future__ import annotations
from typing import Any, Iterable, Mapping
from flask import abort, request
from werkzeug.exceptions import default_exceptions

from sigap.workflow.results import InvalidTransition, ValidationFailed


def abort_with(http_status: int, description: str, **extra: Any):
    """Like flask.abort but attaches extra keys merged into the error payload."""
    exc = default_exceptions[http_status](description=description)
    exc.extra = extra
    raise exc


def ensure(result):
    """Return the result when truthy; otherwise abort with the matching error."""
    if result:
        return result
    if isinstance(result, InvalidTransition):
        abort_with(409, result.reason, **result.to_dict())
    if isinstance(result, ValidationFailed):
        abort_with(422, result.message or f'{result.field} required', **result.to_dict())
    abort(400, description='request rejected')


def json_body() -> Mapping[str, Any]:
    """Request JSON object, or {} when the body is absent. Any other JSON value aborts with 400."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        abort(400, description='request body must be a JSON object')
    return data


def require_fields(data: Mapping[str, Any], fields: Iterable[str]):
    for name in fields:
        value = data.get(name)
        if value is None or (isinstance(value, str) and not value.strip()):
            ensure(ValidationFailed(name, f'{name} required'))
    return data


def validate_choice(value: Any, allowed: Iterable[str], field_name: str = 'status') -> str:
    """Validate that value is one of allowed; returns it for inline use or aborts with 400."""
    allowed = [getattr(a, 'value', a) for a in allowed]
    if value not in allowed:
        abort(400, description=f"{field_name} invalid")
    return value


__all__ = ['abort_with', 'ensure', 'json_body', 'require_fields', 'validate_choice']
