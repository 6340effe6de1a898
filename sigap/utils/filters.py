from __future__ import annotations
from typing import Any, Dict, Mapping
from flask import abort


def apply_filters(query, specs: Dict[str, Dict[str, Any]], params: Mapping[str, Any]):
    """Apply query-string filters declared in ``specs``.

    specs: { param_name: { 'op': callable(query, value) -> query,
                           'coerce': callable (optional), 'validate': callable (optional) } }
    Absent or empty parameters are skipped; coercion or validation failures abort with 400.
    """
    for name, meta in specs.items():
        val = params.get(name)
        if val is None or val == '':
            continue
        if 'coerce' in meta:
            try:
                val = meta['coerce'](val)
            except (TypeError, ValueError):
                abort(400, description=f'{name} invalid')
        if 'validate' in meta and not meta['validate'](val):
            abort(400, description=f'{name} invalid')
        query = meta['op'](query, val)
    return query


def passthrough_params(params: Mapping[str, Any], allowed: Dict[str, Any]) -> Dict[str, Any]:
    """Select the query parameters forwarded to a backend list endpoint.

    ``allowed`` maps parameter name -> validator (or None). Invalid values abort with 400.
    """
    out: Dict[str, Any] = {}
    for name, validate in allowed.items():
        val = params.get(name)
        if val is None or val == '':
            continue
        if validate is not None and not validate(val):
            abort(400, description=f'{name} invalid')
        out[name] = val
    return out
