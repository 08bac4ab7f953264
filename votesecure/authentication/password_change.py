# votesecure/authentication/password_change.py

import hashlib
import logging
import secrets
from datetime import timedelta
from sqlalchemy.exc import SQLAlchemyError
from votesecure.audit.activity_log import ActivityLogger
from votesecure.database.models import AccountStatus, PasswordReset, User, utcnow
from votesecure.encryption.password_hashing import PasswordHashingService, MIN_PASSWORD_LENGTH
from votesecure.errors import AuthError, PersistenceError, ValidationError, VoteSecureError
from votesecure.security.token_manager import TokenManager

logger = logging.getLogger(__name__)

RESET_TOKEN_TTL = timedelta(hours=1)


def hash_reset_token(token):
    # Only the digest is stored; the raw token goes to the client once
    return hashlib.sha256(token.encode()).hexdigest()


class PasswordChangeService:
    def __init__(self, session, audit_logger=None):
        self.session = session
        self.password_service = PasswordHashingService()
        self.tokens = TokenManager()
        self.activity = ActivityLogger(session, audit_logger)

    def _now(self):
        return utcnow()

    def issue_reset_token(self, user, now=None):
        """Create or replace the single reset token row for ``user``.

        Runs in the caller's transaction; returns the raw token.
        """
        now = now or self._now()
        token = secrets.token_hex(32)
        reset = self.session.query(PasswordReset).filter_by(user_id=user.id).first()
        if reset is None:
            reset = PasswordReset(user_id=user.id)
            self.session.add(reset)
        reset.token = hash_reset_token(token)
        reset.expires_at = now + RESET_TOKEN_TTL
        reset.used = False
        reset.used_at = None
        reset.created_at = now
        return token

    def change_password(self, token, new_password, confirm_password):
        if not token or not new_password or not confirm_password:
            raise ValidationError("All fields are required")
        if new_password != confirm_password:
            raise ValidationError("Passwords do not match")
        if not self.password_service.is_acceptable_password(new_password):
            raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")

        try:
            return self._change_password(token, new_password)
        except VoteSecureError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Password change error: %s", e)
            raise PersistenceError("An error occurred while changing password. Please try again.")

    def _change_password(self, token, new_password):
        now = self._now()
        reset = (self.session.query(PasswordReset)
                 .filter_by(token=hash_reset_token(token))
                 .with_for_update()
                 .first())
        if reset is None or reset.used or reset.expires_at <= now:
            logger.warning("Rejected password change with unknown, used or expired token")
            raise AuthError("Invalid or expired token")

        user = self.session.get(User, reset.user_id)
        if user is None:
            raise AuthError("Invalid or expired token")

        user.password_hash = self.password_service.hash_password(new_password)
        user.temp_password_hash = None
        user.password_changed = True
        user.account_status = AccountStatus.ACTIVE.value
        user.login_attempts = 0
        user.account_locked_until = None
        reset.used = True
        reset.used_at = now

        self.activity.log(user.id, 'password_change', 'success', 'Password changed successfully')
        self.session.commit()
        logger.info("Password changed for user %s", user.id)

        return {
            'token': self.tokens.generate_session_token(user),
            'user': user.to_public_dict(),
        }
