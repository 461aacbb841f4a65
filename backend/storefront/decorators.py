# Overview: Request identity decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def load_identity(f):
    """
    Resolve an optional bearer token.

    Sets g.current_user to the User, or None for anonymous (guest) requests.
    A token that is present but invalid is rejected with 401 rather than
    silently treated as a guest.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = _bearer_token()
        g.current_user = None
        if token:
            user = session_service.validate_session(token)
            if not user:
                return jsonify({"error": "Invalid or expired token", "code": "UNAUTHORIZED"}), 401
            g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_auth(f):
    """Require a valid bearer token; sets g.current_user."""
    @wraps(f)
    @load_identity
    def decorated_function(*args, **kwargs):
        if g.current_user is None:
            return jsonify({"error": "Authentication required", "code": "UNAUTHORIZED"}), 401
        return f(*args, **kwargs)

    return decorated_function


def require_admin(f):
    """Require an authenticated ADMIN user."""
    @wraps(f)
    @require_auth
    def decorated_function(*args, **kwargs):
        if not g.current_user.is_admin:
            return jsonify({"error": "Permission denied", "code": "FORBIDDEN"}), 403
        return f(*args, **kwargs)

    return decorated_function
