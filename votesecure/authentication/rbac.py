# votesecure/authentication/rbac.py

from enum import Enum
from functools import wraps
from flask import g
from flask_jwt_extended import verify_jwt_in_request
from votesecure import db
from votesecure.database.models import Role, User
from votesecure.errors import AuthError, ForbiddenError
from votesecure.security.token_manager import TokenManager, SESSION_SCOPE, FACE_VERIFICATION_SCOPE
import logging

# Role-based access control; the role comes from the stored account, not the token

logger = logging.getLogger(__name__)


class Permission(Enum):
    CAST_VOTE = "cast_vote"
    VIEW_OWN_STATUS = "view_own_status"
    REGISTER_VOTERS = "register_voters"
    DELETE_VOTERS = "delete_voters"
    EXPORT_VOTERS = "export_voters"
    IMPORT_VOTER_LIST = "import_voter_list"


# Role -> Permissions mapping
ROLE_PERMISSIONS = {
    Role.VOTER: [
        Permission.CAST_VOTE,
        Permission.VIEW_OWN_STATUS,
    ],
    Role.ADMIN: [
        Permission.VIEW_OWN_STATUS,
        Permission.REGISTER_VOTERS,
        Permission.DELETE_VOTERS,
        Permission.EXPORT_VOTERS,
        Permission.IMPORT_VOTER_LIST,
    ],
}


class RBACService:
    def has_permission(self, user_role, permission):
        if isinstance(user_role, str):
            user_role = Role(user_role)
        if isinstance(permission, str):
            permission = Permission(permission)
        return permission in ROLE_PERMISSIONS.get(user_role, [])


rbac_service = RBACService()
token_manager = TokenManager()


def _load_current_user(allowed_scopes):
    verify_jwt_in_request()
    if token_manager.get_scope() not in allowed_scopes:
        raise AuthError("Authentication required")
    try:
        user_id = token_manager.get_identity()
    except (TypeError, ValueError):
        raise AuthError("Invalid token")
    user = db.session.get(User, user_id)
    if user is None:
        raise AuthError("Authentication required")
    g.current_user = user
    return user


def require_permission(permission):
    """Require a session token whose account (as stored, not as claimed) holds ``permission``."""
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            user = _load_current_user((SESSION_SCOPE,))
            try:
                allowed = rbac_service.has_permission(user.role, permission)
            except ValueError:
                allowed = False
            if not allowed:
                logger.warning("Permission %s denied for user %s (role=%s)",
                               permission.value, user.id, user.role)
                if permission is Permission.CAST_VOTE:
                    raise ForbiddenError("Only voters can cast votes")
                raise ForbiddenError("Unauthorized - Admin access required")
            return func(*args, **kwargs)
        return wrapper
    return decorator


def require_face_scope(func):
    """Accept either the face-verification token or a full session token."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        _load_current_user((FACE_VERIFICATION_SCOPE, SESSION_SCOPE))
        return func(*args, **kwargs)
    return wrapper
