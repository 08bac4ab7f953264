# votesecure/errors.py
"""Error taxonomy shared by the services and the HTTP layer.

Every service failure that a caller may see is a ``VoteSecureError``
subclass. The HTTP layer renders them as ``{"success": false, "message": ...}``
with the class status code, an optional ``code`` and any extra ``payload``
fields. Messages are safe to show to end users; internal details belong in
the server log only.

Hierarchy:
- VoteSecureError
  - ValidationError   (400) malformed or missing input
  - AuthError         (401) missing, invalid or expired credentials/token
    - ForbiddenError  (403) authenticated but wrong role
  - ConflictError     (400) duplicate email
  - NotFoundError     (404) unknown election/candidate/voter
  - LockoutError      (423) account temporarily locked
  - DependencyError   (502) face service, notifier or ledger failure
  - PersistenceError  (500) database failure, generic message
  - VoteRejected      (400/502/500) vote refused, ``code`` is a VoteErrorCode
"""

from enum import Enum


class VoteErrorCode(Enum):
    ALREADY_VOTED = "ALREADY_VOTED"
    INACTIVE_ELECTION = "INACTIVE_ELECTION"
    INVALID_CANDIDATE = "INVALID_CANDIDATE"
    BLOCKCHAIN_ERROR = "BLOCKCHAIN_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class VoteSecureError(Exception):
    status_code = 400

    def __init__(self, message, code=None, status_code=None, payload=None):
        super().__init__(message)
        self.message = message
        self.code = code.value if isinstance(code, Enum) else code
        if status_code is not None:
            self.status_code = status_code
        self.payload = dict(payload or {})

    def to_dict(self):
        body = {'success': False, 'message': self.message}
        if self.code:
            body['code'] = self.code
        body.update(self.payload)
        return body


class ValidationError(VoteSecureError):
    status_code = 400


class AuthError(VoteSecureError):
    status_code = 401


class ForbiddenError(AuthError):
    status_code = 403


class ConflictError(VoteSecureError):
    status_code = 400


class NotFoundError(VoteSecureError):
    status_code = 404


class LockoutError(VoteSecureError):
    status_code = 423

    def __init__(self, minutes_remaining, message=None):
        super().__init__(
            message or f"Account locked. Please try again in {minutes_remaining} minutes.",
            code='ACCOUNT_LOCKED',
            payload={'locked': True, 'minutes_remaining': minutes_remaining},
        )
        self.minutes_remaining = minutes_remaining


class DependencyError(VoteSecureError):
    status_code = 502


class PersistenceError(VoteSecureError):
    status_code = 500

    def __init__(self, message="A database error occurred. Please try again.", **kwargs):
        super().__init__(message, **kwargs)


class VoteRejected(VoteSecureError):
    """A vote was refused for one of the ``VoteErrorCode`` reasons."""

    STATUS_BY_CODE = {
        VoteErrorCode.ALREADY_VOTED: 400,
        VoteErrorCode.INACTIVE_ELECTION: 400,
        VoteErrorCode.INVALID_CANDIDATE: 400,
        VoteErrorCode.BLOCKCHAIN_ERROR: 502,
        VoteErrorCode.INTERNAL_ERROR: 500,
    }

    def __init__(self, code: VoteErrorCode, message: str):
        super().__init__(message, code=code, status_code=self.STATUS_BY_CODE[code])
        self.reason = code
