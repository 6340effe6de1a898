"""Session identity: JWT claims <-> ActorContext.

The gateway never keeps "current user" state of its own. Each request's identity comes
from its JWT (subject = backend user id, claims = role set, active role, upstream
token) and is handed to the workflow model as an explicit ActorContext.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Optional
from flask import abort
from flask_jwt_extended import get_jwt, get_jwt_identity

from sigap.workflow.records import ActorContext
from sigap.workflow.types import Role

# When a multi-role account logs in without a stored preference, the first role
# present in this order becomes active.
ROLE_PRIORITY = (Role.SUPER_ADMIN, Role.ADMIN_LAYANAN, Role.ADMIN_PENYEDIA, Role.TEKNISI, Role.PEGAWAI)


def normalize_roles(raw: Any) -> List[str]:
    """Backend users carry ``roles`` (list), sometimes only ``role`` (str); unknown roles are dropped."""
    if isinstance(raw, str):
        raw = [raw]
    known = {r.value for r in Role}
    out: List[str] = []
    for r in raw or []:
        name = r.get('name') if isinstance(r, dict) else r
        if name in known and name not in out:
            out.append(name)
    return out


def resolve_active_role(roles: Iterable[str], preferred: Optional[str] = None) -> str:
    roles = list(roles)
    if not roles:
        abort(403, description='Account has no usable role')
    if preferred in roles:
        return preferred
    for role in ROLE_PRIORITY:
        if role.value in roles:
            return role.value
    return roles[0]


def build_claims(user: Dict[str, Any], upstream_token: Optional[str], active_role: Optional[str] = None) -> Dict[str, Any]:
    roles = normalize_roles(user.get('roles') or user.get('role'))
    return {
        'roles': roles,
        'active_role': resolve_active_role(roles, active_role or user.get('role')),
        'name': user.get('name'),
        'upstream_token': upstream_token,
    }


def current_actor() -> ActorContext:
    claims = get_jwt()
    roles = claims.get('roles') or []
    active = claims.get('active_role')
    if active not in roles:
        abort(403, description='Active role not granted')
    return ActorContext.of(get_jwt_identity(), active, roles)


def upstream_token() -> Optional[str]:
    return get_jwt().get('upstream_token')


__all__ = ['ROLE_PRIORITY', 'normalize_roles', 'resolve_active_role', 'build_claims', 'current_actor', 'upstream_token']
