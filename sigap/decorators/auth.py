from functools import wraps
from flask import abort
from flask_jwt_extended import verify_jwt_in_request
from sigap.services.session import current_actor


def require_roles(*roles: str):
    """Require a valid JWT whose active role is one of ``roles`` (any role when empty)."""
    allowed = {getattr(r, 'value', r) for r in roles}

    def outer(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            verify_jwt_in_request()
            actor = current_actor()
            if allowed and actor.role.value not in allowed:
                abort(403, description='Role not permitted')
            return fn(*args, **kwargs)
        return wrapper
    return outer
