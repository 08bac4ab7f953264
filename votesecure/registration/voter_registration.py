# votesecure/registration/voter_registration.py
"""Admin registration of a single voter.

The face image is written before the transaction opens so that it can be
removed again on any failure up to the commit. The account, the eligibility
row and the authorization row are committed together. The per-election CSV
row and the credentials e-mail happen after the commit; their failures are
reported in the result and never undo the registration.
"""

import logging
import os
import secrets
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from votesecure.audit.activity_log import ActivityLogger
from votesecure.database.models import (AccountStatus, Election, ElectionVoterAuthorization,
                                        EligibleVoter, Role, User, normalize_email, utcnow)
from votesecure.encryption.password_hashing import PasswordHashingService
from votesecure.errors import (ConflictError, DependencyError, ForbiddenError, PersistenceError,
                               ValidationError, VoteSecureError)
from votesecure.registration.csv_audit import RegistrationCsvWriter
from votesecure.security.input_validator import InputValidator

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ('name', 'email', 'date_of_birth', 'face_image', 'election_id')
FACES_SUBDIR = 'faces'


class VoterRegistrationService:
    def __init__(self, session, notifier, upload_folder, csv_export_folder,
                 login_url='', audit_logger=None):
        self.session = session
        self.notifier = notifier
        self.upload_folder = upload_folder
        self.login_url = login_url
        self.audit_logger = audit_logger
        self.csv_writer = RegistrationCsvWriter(csv_export_folder)
        self.password_service = PasswordHashingService()
        self.validator = InputValidator()
        self.activity = ActivityLogger(session, audit_logger)

    def _now(self):
        return utcnow()

    def register_voter(self, admin, name, email, date_of_birth, face_image, election_id):
        if admin is None or not admin.is_admin:
            raise ForbiddenError("Unauthorized - Admin access required")

        fields = {'name': name, 'email': email, 'date_of_birth': date_of_birth,
                  'face_image': face_image, 'election_id': election_id}
        for field_name in REQUIRED_FIELDS:
            value = fields[field_name]
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{field_name.replace('_', ' ').capitalize()} is required")

        election_key = self.validator.parse_positive_int(election_id)
        if election_key is None:
            raise ValidationError("Invalid election selected")
        election = self.session.get(Election, election_key)
        if election is None:
            raise DependencyError("Selected election does not exist",
                                  code='ELECTION_NOT_FOUND', status_code=404)

        email = normalize_email(email)
        if not self.validator.validate_email(email):
            raise ValidationError("Invalid email format")
        name = self.validator.sanitize_string(name) if isinstance(name, str) else ''
        if not name:
            name = email.split('@')[0].capitalize()

        try:
            birth_date = self.validator.parse_date(date_of_birth)
        except ValueError as e:
            raise ValidationError(str(e))
        now = self._now()
        age = self.validator.calculate_age(birth_date, now.date())
        if not self.validator.is_of_voting_age(birth_date, now.date()):
            raise ValidationError("Voter is not eligible. Age must be 18 or above.", payload={'age': age})

        try:
            image_bytes = self.validator.decode_image_data_url(face_image)
        except ValueError as e:
            raise ValidationError(str(e))
        face_path, face_relpath = self._store_face(image_bytes)

        if self._email_taken(email):
            self._abort(face_path)
            raise ConflictError("Email already exists")

        temp_password = self.password_service.generate_temporary_password()
        try:
            user = self._create_voter(admin, election, name, email, birth_date,
                                      face_relpath, temp_password, now)
        except VoteSecureError:
            self._abort(face_path)
            raise
        except IntegrityError as e:
            self._abort(face_path)
            logger.warning("Registration conflict for %s: %s", email, e.orig)
            raise ConflictError("Email already exists")
        except SQLAlchemyError as e:
            self._abort(face_path)
            logger.error("Registration failed for %s: %s", email, e)
            raise PersistenceError("Registration failed. Please try again.")
        except Exception:
            self._abort(face_path)
            raise

        logger.info("Registered voter %s for election %s", user.id, election.id)
        csv_status = self.csv_writer.append(election, name, email, birth_date, now)
        email_sent = self.notifier.send_voter_credentials(email, name, temp_password, self.login_url)

        result = {
            'email': email,
            'email_sent': email_sent,
            'user_id': user.id,
            'voter_id': user.voter_id,
            'csv_status': csv_status,
        }
        if not email_sent:
            logger.warning("Credentials e-mail to %s was not delivered", email)
            result['warning'] = 'Voter registered but credentials e-mail could not be sent.'
        return result

    def _email_taken(self, email):
        return self.session.query(User.id).filter(User.email == email).first() is not None

    def _create_voter(self, admin, election, name, email, birth_date, face_relpath, temp_password, now):
        existing = (self.session.query(User.id)
                    .filter(User.email == email)
                    .with_for_update()
                    .first())
        if existing is not None:
            raise ConflictError("Email already exists")

        temp_hash = self.password_service.hash_password(temp_password)
        user = User(
            role=Role.VOTER.value,
            name=name,
            email=email,
            voter_id=self._generate_voter_id(),
            date_of_birth=birth_date,
            password_hash=temp_hash,
            temp_password_hash=temp_hash,
            password_changed=False,
            account_status=AccountStatus.TEMP_PASSWORD.value,
            face_image=face_relpath,
            authorized=True,
            authorized_at=now,
            authorized_by=admin.id,
            created_at=now,
        )
        self.session.add(user)
        self.session.flush()

        eligible = (self.session.query(EligibleVoter)
                    .filter_by(election_id=election.id, email=email)
                    .first())
        if eligible is None:
            self.session.add(EligibleVoter(election_id=election.id, name=name, email=email,
                                           active=True, has_registered=True))
        else:
            eligible.name = name
            eligible.active = True
            eligible.has_registered = True

        self.session.add(ElectionVoterAuthorization(user_id=user.id, election_id=election.id,
                                                    authorized=True, has_voted=False))
        self.activity.log(user.id, 'registration', 'success',
                          f'Registered by admin {admin.id} for election {election.id}')
        self.session.commit()
        return user

    def _generate_voter_id(self):
        for _ in range(5):
            candidate = 'VS' + secrets.token_hex(4).upper()
            if self.session.query(User.id).filter(User.voter_id == candidate).first() is None:
                return candidate
        raise PersistenceError("Could not allocate a voter ID. Please try again.")

    def _store_face(self, image_bytes):
        faces_dir = os.path.join(self.upload_folder, FACES_SUBDIR)
        file_name = f'face_{secrets.token_hex(8)}.jpg'
        path = os.path.join(faces_dir, file_name)
        try:
            os.makedirs(faces_dir, exist_ok=True)
            with open(path, 'wb') as f:
                f.write(image_bytes)
        except OSError as e:
            logger.error("Failed to save face image: %s", e)
            raise PersistenceError("Failed to save face image")
        return path, f'{FACES_SUBDIR}/{file_name}'

    def _abort(self, face_path):
        self.session.rollback()
        self._remove_file(face_path)

    def _remove_file(self, path):
        try:
            if path and os.path.exists(path):
                os.remove(path)
        except OSError as e:
            logger.warning("Could not remove orphaned face image %s: %s", path, e)
