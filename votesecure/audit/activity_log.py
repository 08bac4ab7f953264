# votesecure/audit/activity_log.py

import logging
from flask import has_request_context, request
from sqlalchemy.exc import SQLAlchemyError
from votesecure.database.models import VoterActivityLog

logger = logging.getLogger(__name__)


class ActivityLogger:
    """Writes ``voter_activity_log`` rows inside the caller's transaction.

    Each insert runs in a SAVEPOINT so a failing log write is rolled back on
    its own and never aborts the surrounding work.
    """

    def __init__(self, session, audit_logger=None):
        self.session = session
        self.audit_logger = audit_logger

    def log(self, user_id, activity_type, status, details=''):
        ip_address, user_agent = 'unknown', 'unknown'
        if has_request_context():
            ip_address = request.remote_addr or 'unknown'
            user_agent = (request.user_agent.string or 'unknown')[:255]
        try:
            with self.session.begin_nested():
                self.session.add(VoterActivityLog(
                    user_id=user_id,
                    activity_type=activity_type,
                    status=status,
                    details=details,
                    ip_address=ip_address,
                    user_agent=user_agent,
                ))
        except SQLAlchemyError as e:
            logger.warning("Failed to log activity %s for user %s: %s", activity_type, user_id, e)
            return False
        if self.audit_logger is not None and status == 'failed':
            self.audit_logger.log_security_event(
                activity_type, {'status': status, 'details': details, 'ip': ip_address}, user_id=user_id)
        return True
