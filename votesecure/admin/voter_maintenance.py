# votesecure/admin/voter_maintenance.py

import logging
import os
from sqlalchemy.exc import SQLAlchemyError
from votesecure.database.models import (ElectionVoterAuthorization, EligibleVoter, PasswordReset,
                                        Role, User, Vote)
from votesecure.errors import NotFoundError, PersistenceError, ValidationError, VoteSecureError
from votesecure.security.input_validator import InputValidator

# Cascading removal of voter accounts and everything hanging off them

logger = logging.getLogger(__name__)


class VoterMaintenanceService:
    def __init__(self, session, upload_folder, audit_logger=None):
        self.session = session
        self.upload_folder = upload_folder
        self.audit_logger = audit_logger
        self.validator = InputValidator()

    def delete_voter(self, voter_id, admin=None):
        user_id = self.validator.parse_positive_int(voter_id)
        if user_id is None:
            raise ValidationError("Voter ID is required")

        voter = (self.session.query(User)
                 .filter(User.id == user_id, User.role == Role.VOTER.value)
                 .first())
        if voter is None:
            raise NotFoundError("Voter not found")
        name, email, face_image = voter.name, voter.email, voter.face_image

        try:
            counts = self._delete_voters([voter])
            if counts['users'] == 0:
                self.session.rollback()
                raise PersistenceError("Failed to delete voter - no rows affected")
            self.session.commit()
        except VoteSecureError:
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Error deleting voter %s: %s", user_id, e)
            raise PersistenceError("Error deleting voter. Please try again.")

        counts['face_images'] = int(self._remove_face(face_image))
        self._audit('voter_deleted', {'voter_id': user_id, 'counts': counts}, admin)

        message = 'Voter deleted successfully from database'
        if counts['votes']:
            message += '. Note: All votes cast by this voter have also been deleted.'
        return {
            'success': True,
            'message': message,
            'deleted_voter': {'id': user_id, 'name': name, 'email': email},
            'related_data_deleted': counts,
        }

    def delete_all_voters(self, confirm, admin=None):
        if confirm is not True:
            raise ValidationError("Confirmation required. Send confirm: true to delete all voters.",
                                  payload={'requires_confirmation': True})

        voters = self.session.query(User).filter(User.role == Role.VOTER.value).all()
        if not voters:
            return {'success': True, 'message': 'No voters to delete', 'deleted_count': 0}
        face_images = [voter.face_image for voter in voters]
        expected = len(voters)

        try:
            counts = self._delete_voters(voters)
            if counts['users'] == 0:
                self.session.rollback()
                raise PersistenceError("Failed to delete voters - no rows affected")
            self.session.commit()
        except VoteSecureError:
            raise
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Error deleting all voters: %s", e)
            raise PersistenceError("Error deleting voters. Please try again.")

        counts['face_images'] = sum(1 for path in face_images if self._remove_face(path))
        if counts['users'] != expected:
            logger.warning("Expected to delete %s voters, deleted %s", expected, counts['users'])
        self._audit('all_voters_deleted', {'counts': counts}, admin)
        return {
            'success': True,
            'message': f"Successfully deleted {counts['users']} voter(s)",
            'deleted_count': counts['users'],
            'related_data_deleted': counts,
        }

    def _delete_voters(self, voters):
        """Delete dependent rows, then the accounts, in the open transaction."""
        ids = [voter.id for voter in voters]
        emails = [voter.email for voter in voters]
        counts = {
            'authorization_records': (self.session.query(ElectionVoterAuthorization)
                                      .filter(ElectionVoterAuthorization.user_id.in_(ids))
                                      .delete(synchronize_session=False)),
            'eligibility_records': (self.session.query(EligibleVoter)
                                    .filter(EligibleVoter.email.in_(emails))
                                    .delete(synchronize_session=False)),
            'password_resets': (self.session.query(PasswordReset)
                                .filter(PasswordReset.user_id.in_(ids))
                                .delete(synchronize_session=False)),
            'votes': (self.session.query(Vote)
                      .filter(Vote.user_id.in_(ids))
                      .delete(synchronize_session=False)),
        }
        counts['users'] = (self.session.query(User)
                           .filter(User.id.in_(ids), User.role == Role.VOTER.value)
                           .delete(synchronize_session=False))
        return counts

    def _remove_face(self, face_image):
        if not face_image:
            return False
        path = os.path.join(self.upload_folder, face_image)
        try:
            if os.path.isfile(path):
                os.remove(path)
                return True
        except OSError as e:
            logger.warning("Could not remove face image %s: %s", path, e)
        return False

    def _audit(self, event_type, data, admin):
        if self.audit_logger:
            self.audit_logger.log_security_event(event_type, data, user_id=admin.id if admin else None)
