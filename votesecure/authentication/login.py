# votesecure/authentication/login.py
"""Multi-factor login.

One call to ``LoginService.login`` moves an account through

    credentials -> temporary password change | face verification | OTP -> session

and stops at the first step that still needs input from the caller. Every
failed password, face or OTP check counts towards the same lockout: the fifth
consecutive failure locks the account for ``LOCKOUT_DURATION``. A lock that
has run out is cleared on the next request, before anything else is checked.
"""

import hmac
import logging
import math
import os
import secrets
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from sqlalchemy.exc import SQLAlchemyError
from votesecure.audit.activity_log import ActivityLogger
from votesecure.authentication.password_change import PasswordChangeService
from votesecure.database.models import AccountStatus, User, normalize_email, utcnow
from votesecure.encryption.password_hashing import PasswordHashingService
from votesecure.errors import (AuthError, LockoutError, PersistenceError, ValidationError,
                               DependencyError, VoteSecureError)
from votesecure.security.input_validator import InputValidator
from votesecure.security.token_manager import TokenManager

logger = logging.getLogger(__name__)

MAX_LOGIN_ATTEMPTS = 5
LOCKOUT_MINUTES = 30
LOCKOUT_DURATION = timedelta(minutes=LOCKOUT_MINUTES)
OTP_TTL = timedelta(minutes=10)
OTP_LENGTH = 6


class LoginState(Enum):
    TEMP_PASSWORD_CHANGE_REQUIRED = "temp_password_change_required"
    FACE_VERIFICATION_REQUIRED = "face_verification_required"
    OTP_REQUIRED = "otp_required"
    AUTHENTICATED = "authenticated"


_STATE_FLAGS = {
    LoginState.TEMP_PASSWORD_CHANGE_REQUIRED: 'requires_password_change',
    LoginState.FACE_VERIFICATION_REQUIRED: 'requires_face_verification',
    LoginState.OTP_REQUIRED: 'requires_otp',
}


@dataclass
class LoginOutcome:
    state: LoginState
    message: str
    data: dict = field(default_factory=dict)

    def to_dict(self):
        body = {'success': True, 'message': self.message}
        flag = _STATE_FLAGS.get(self.state)
        if flag:
            body[flag] = True
        body.update(self.data)
        return body


def mask_email(email):
    local, _, domain = (email or '').partition('@')
    if not domain:
        return email
    if len(local) <= 4:
        return local[:1] + '*' * max(0, len(local) - 1) + '@' + domain
    return local[:2] + '*' * (len(local) - 4) + local[-2:] + '@' + domain


class LoginService:
    def __init__(self, session, face_matcher, notifier, audit_logger=None, upload_folder=''):
        self.session = session
        self.face_matcher = face_matcher
        self.notifier = notifier
        self.audit_logger = audit_logger
        self.upload_folder = upload_folder
        self.password_service = PasswordHashingService()
        self.validator = InputValidator()
        self.tokens = TokenManager()
        self.activity = ActivityLogger(session, audit_logger)
        self.resets = PasswordChangeService(session, audit_logger)

    def _now(self):
        return utcnow()

    # Public operations

    def login(self, identifier, password, face_image=None, otp=None):
        if not identifier or not password:
            raise ValidationError("Voter ID and password are required")
        return self._guarded(self._login, identifier, password, face_image, otp)

    def verify_otp(self, identifier, otp):
        if not identifier or not otp:
            raise ValidationError("Voter ID and OTP are required")
        return self._guarded(self._verify_otp, identifier, otp)

    def verify_face(self, user_id, face_image):
        if not face_image:
            raise ValidationError("Face image is required")
        return self._guarded(self._verify_face, user_id, face_image)

    def _guarded(self, operation, *args):
        try:
            return operation(*args)
        except VoteSecureError:
            self.session.rollback()
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Login error: %s", e)
            raise PersistenceError("An error occurred during login. Please try again.")

    # Flows

    def _login(self, identifier, password, face_image, otp):
        now = self._now()
        user = self._find_for_update(identifier)
        if user is None:
            logger.info("Login attempt for unknown identifier")
            if self.audit_logger:
                self.audit_logger.log_security_event('failed_login', {'reason': 'unknown_identifier'})
            raise AuthError(f"Invalid credentials. {MAX_LOGIN_ATTEMPTS - 1} attempts remaining.",
                            payload={'attempts_remaining': MAX_LOGIN_ATTEMPTS - 1})

        self._check_lock(user, now, 'login')

        if (user.temp_password_hash and not user.password_changed
                and self.password_service.verify_password(password, user.temp_password_hash)):
            return self._require_password_change(user, now)

        if not self.password_service.verify_password(password, user.password_hash):
            self._record_failure(user, now, 'login', 'Invalid credentials')
        if self.password_service.needs_rehash(user.password_hash):
            user.password_hash = self.password_service.hash_password(password)

        if user.account_status == AccountStatus.SUSPENDED.value:
            self.activity.log(user.id, 'login', 'failed', 'Account suspended')
            self.session.commit()
            raise AuthError("Account suspended. Please contact the administrator.", status_code=403)

        if not user.is_admin:
            if face_image:
                self._match_face(user, face_image, now)
            elif not user.face_verified:
                self.session.commit()
                return LoginOutcome(LoginState.FACE_VERIFICATION_REQUIRED, 'Face verification required')

        if user.otp_required:
            if not otp:
                return self._send_otp(user, now)
            self._check_otp(user, otp, now)

        return self._authenticate(user, now)

    def _verify_otp(self, identifier, otp):
        now = self._now()
        user = self._find_for_update(identifier)
        if user is None:
            remaining = MAX_LOGIN_ATTEMPTS - 1
            raise AuthError(f"Invalid or expired OTP. {remaining} attempts remaining.",
                            payload={'requires_otp': True, 'attempts_remaining': remaining})
        self._check_lock(user, now, 'otp_verification')
        self._check_otp(user, otp, now)
        return self._authenticate(user, now, message='OTP verified successfully')

    def _verify_face(self, user_id, face_image):
        now = self._now()
        user = (self.session.query(User)
                .filter(User.id == user_id)
                .with_for_update()
                .first())
        if user is None:
            raise AuthError("Authentication required")
        self._check_lock(user, now, 'face_verification')
        self._match_face(user, face_image, now)

        user.login_attempts = 0
        user.account_locked_until = None
        user.last_login = now
        self.session.commit()
        requires_change = bool(user.temp_password_hash) or not user.password_changed
        return {
            'success': True,
            'message': 'Face verified successfully',
            'requires_password_change': requires_change,
            'password_changed': bool(user.password_changed),
        }

    # Steps

    def _find_for_update(self, identifier):
        identifier = str(identifier).strip()
        query = self.session.query(User)
        if '@' in identifier:
            query = query.filter(User.email == normalize_email(identifier))
        else:
            voter_id = identifier.upper()
            if not self.validator.validate_voter_id(voter_id):
                return None
            query = query.filter(User.voter_id == voter_id)
        return query.with_for_update().first()

    def _check_lock(self, user, now, activity_type):
        locked_until = user.account_locked_until
        if locked_until is None:
            return
        if now < locked_until:
            minutes = max(1, math.ceil((locked_until - now).total_seconds() / 60))
            self.activity.log(user.id, activity_type, 'failed', 'Account temporarily locked')
            self.session.commit()
            raise LockoutError(minutes)

        # Lock has run out
        user.account_locked_until = None
        if user.account_status == AccountStatus.LOCKED.value:
            user.account_status = (AccountStatus.ACTIVE.value if user.password_changed
                                   else AccountStatus.TEMP_PASSWORD.value)

    def _record_failure(self, user, now, activity_type, reason, extra=None):
        """Count a failed check, lock on the fifth, commit and raise."""
        user.login_attempts = (user.login_attempts or 0) + 1
        remaining = max(0, MAX_LOGIN_ATTEMPTS - user.login_attempts)
        payload = dict(extra or {})
        payload['attempts_remaining'] = remaining

        if user.login_attempts >= MAX_LOGIN_ATTEMPTS:
            user.account_locked_until = now + LOCKOUT_DURATION
            user.account_status = AccountStatus.LOCKED.value
            self.activity.log(user.id, activity_type, 'failed', f'{reason}; account locked')
            if self.audit_logger:
                self.audit_logger.log_security_event(
                    'account_locked', {'attempts': user.login_attempts,
                                       'locked_until': user.account_locked_until.isoformat()},
                    user_id=user.id)
            self.session.commit()
            logger.warning("Account %s locked after %s failed attempts", user.id, user.login_attempts)
            error = LockoutError(
                LOCKOUT_MINUTES,
                message=f"Account locked for {LOCKOUT_MINUTES} minutes due to too many failed attempts.")
            error.payload.update(payload)
            raise error

        self.activity.log(user.id, activity_type, 'failed', reason)
        self.session.commit()
        raise AuthError(f"{reason}. {remaining} attempts remaining.", payload=payload)

    def _require_password_change(self, user, now):
        reset_token = self.resets.issue_reset_token(user, now)
        self.activity.log(user.id, 'login', 'success', 'Temporary password accepted')
        self.session.commit()
        return LoginOutcome(
            LoginState.TEMP_PASSWORD_CHANGE_REQUIRED,
            'Please change your temporary password',
            {
                'token': self.tokens.generate_face_token(user),
                'password_change_token': reset_token,
                'user': {
                    'id': user.id,
                    'name': user.name,
                    'email': user.email,
                    'role': user.role,
                    'face_image': user.face_image,
                },
            },
        )

    def _load_reference_face(self, user):
        path = os.path.join(self.upload_folder, user.face_image) if user.face_image else None
        if not path or not os.path.isfile(path):
            raise ValidationError("No face image found for this user. Please contact administrator.")
        with open(path, 'rb') as f:
            return f.read()

    def _match_face(self, user, face_image, now):
        try:
            captured = self.validator.decode_image_data_url(face_image)
        except ValueError as e:
            raise ValidationError(str(e))
        reference = self._load_reference_face(user)

        if not self.face_matcher.match(captured, reference):
            self._record_failure(user, now, 'face_verification', 'Face verification failed',
                                 extra={'requires_face_verification': True})

        user.face_verified = True
        self.activity.log(user.id, 'face_verification', 'success', 'Face verified successfully')

    def _send_otp(self, user, now):
        if not user.otp or not user.otp_expiry or user.otp_expiry < now:
            code = f"{secrets.randbelow(10 ** OTP_LENGTH):0{OTP_LENGTH}d}"
            user.otp = code
            user.otp_expiry = now + OTP_TTL
            if not self.notifier.send_otp(user.email, code):
                self.session.rollback()
                logger.error("OTP delivery failed for user %s", user.id)
                raise DependencyError("Failed to send OTP. Please try again.", code='NOTIFICATION_ERROR')
            self.activity.log(user.id, 'otp_sent', 'success', 'OTP sent to user')
        self.session.commit()
        return LoginOutcome(LoginState.OTP_REQUIRED,
                            'OTP has been sent to your registered email',
                            {'otp_sent_to': mask_email(user.email)})

    def _check_otp(self, user, otp, now):
        otp = str(otp).strip()
        valid = (user.otp is not None and user.otp_expiry is not None
                 and hmac.compare_digest(user.otp.encode(), otp.encode())
                 and now <= user.otp_expiry)
        if not valid:
            self._record_failure(user, now, 'otp_verification', 'Invalid or expired OTP',
                                 extra={'requires_otp': True})
        self.activity.log(user.id, 'otp_verification', 'success', 'OTP verified successfully')

    def _authenticate(self, user, now, message='Login successful'):
        user.login_attempts = 0
        user.account_locked_until = None
        user.otp = None
        user.otp_expiry = None
        user.last_login = now
        self.activity.log(user.id, 'login', 'success', 'Login successful')
        self.session.commit()
        logger.info("User %s logged in", user.id)
        return LoginOutcome(LoginState.AUTHENTICATED, message, {
            'token': self.tokens.generate_session_token(user),
            'user': user.to_public_dict(),
        })
