from __future__ import annotations
from flask import Blueprint, request, abort
from flask_jwt_extended import create_access_token, jwt_required, get_jwt, get_jwt_identity
from sigap import get_repository
from sigap.services.repository import UpstreamRejected
from sigap.services.session import build_claims, current_actor

session_bp = Blueprint('session', __name__)


@session_bp.post('/login')
def login():
    data = request.json or {}
    email = data.get('email'); password = data.get('password')
    if not email or not password:
        abort(400, description='email & password required')
    try:
        result = get_repository().login(email, password)
    except UpstreamRejected as e:
        if e.status_code in (401, 403, 422):
            abort(401, description=e.message or 'invalid credentials')
        raise
    user = (result or {}).get('user') or {}
    upstream = (result or {}).get('token') or (result or {}).get('access_token')
    if user.get('id') is None or not upstream:
        abort(502, description='backend login response incomplete')
    claims = build_claims(user, upstream, data.get('active_role'))
    token = create_access_token(identity=str(user['id']), additional_claims=claims)
    return {'access_token': token, 'roles': claims['roles'], 'active_role': claims['active_role']}


@session_bp.get('/me')
@jwt_required()
def me():
    actor = current_actor()
    claims = get_jwt()
    return {
        'user_id': actor.user_id,
        'name': claims.get('name'),
        'roles': [r.value for r in actor.roles],
        'active_role': actor.role.value,
    }


@session_bp.post('/active-role')
@jwt_required()
def switch_active_role():
    """Re-issue the token with another role of the same account as the active one."""
    data = request.json or {}
    role = data.get('role')
    claims = get_jwt()
    roles = claims.get('roles') or []
    if not role:
        abort(400, description='role required')
    if role not in roles:
        abort(403, description='Role not granted to this account')
    new_claims = {
        'roles': roles,
        'active_role': role,
        'name': claims.get('name'),
        'upstream_token': claims.get('upstream_token'),
    }
    token = create_access_token(identity=get_jwt_identity(), additional_claims=new_claims)
    return {'access_token': token, 'roles': roles, 'active_role': role}
