# Overview: Request decorators for API routes; establishes the acting user once per request.

from __future__ import annotations

from functools import wraps
from flask import request, jsonify, g

from .actor import ActorContext, ROLES


def _actor_from_headers() -> ActorContext | None:
    """
    Build the ActorContext from the identity the upstream gateway forwards.

    Returns None when the headers are missing or malformed.
    """
    raw_user_id = (request.headers.get("X-User-Id") or "").strip()
    role = (request.headers.get("X-User-Role") or "").strip().lower()
    if not raw_user_id.isdigit() or role not in ROLES:
        return None
    return ActorContext(user_id=int(raw_user_id), role=role)


def require_role(*roles: str):
    """
    Require an authenticated actor holding one of `roles`.

    No roles means any known role may call the route.

    Sets:
    - g.actor: the immutable ActorContext routes pass into services

    Returns 401 if the identity headers are missing or invalid, 403 if the
    role is not allowed.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = _actor_from_headers()
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401

            if roles and not actor.has_role(*roles):
                return jsonify({
                    "error": "Permission denied",
                    "details": {"role": actor.role, "allowed_roles": list(roles)},
                }), 403

            g.actor = actor
            return f(*args, **kwargs)

        return decorated_function

    return decorator
