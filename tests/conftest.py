# tests/conftest.py
import base64
import os
import secrets
from datetime import date, timedelta

import pytest

from votesecure import create_app, db
from votesecure.audit.audit_logger import AuditLogger
from votesecure.authentication.face_matching import FaceMatcher
from votesecure.collaborators import Collaborators
from votesecure.config import TestConfig
from votesecure.database.models import (AccountStatus, Candidate, Election, ElectionStatus,
                                        ElectionVoterAuthorization, EligibleVoter, Role, User, utcnow)
from votesecure.encryption.password_hashing import PasswordHashingService
from votesecure.notifications.notifier import Notifier
from votesecure.security.token_manager import TokenManager
from votesecure.voting.ledger import LedgerClient, LedgerReceipt, LedgerVerification, generate_vote_hash

FACE_BYTES = b'\xff\xd8\xff\xe0' + b'reference-face-pixels' * 8
FACE_DATA_URL = 'data:image/jpeg;base64,' + base64.b64encode(FACE_BYTES).decode()
VOTER_PASSWORD = 'CorrectHorse1'
ADMIN_PASSWORD = 'AdminPass123'


class FakeFaceMatcher(FaceMatcher):
    def __init__(self):
        self.result = True
        self.calls = []

    def match(self, captured, reference):
        self.calls.append((captured, reference))
        return self.result


class FakeNotifier(Notifier):
    def __init__(self):
        self.deliver = True
        self.otps = []
        self.credentials = []

    def send_otp(self, email, otp, purpose='login'):
        self.otps.append((email, otp))
        return self.deliver

    def send_voter_credentials(self, email, name, temp_password, login_url):
        self.credentials.append({'email': email, 'name': name,
                                 'temp_password': temp_password, 'login_url': login_url})
        return self.deliver


class FakeLedger(LedgerClient):
    def __init__(self):
        self.fail = False
        self.recorded = {}

    def record_vote(self, user_id, election_id, candidate_id):
        vote_hash = generate_vote_hash(election_id, candidate_id, user_id)
        if self.fail:
            return LedgerReceipt(success=False, vote_hash=vote_hash, message='Ledger unavailable')
        self.recorded[(user_id, election_id)] = vote_hash
        return LedgerReceipt(success=True, transaction_hash='0x' + vote_hash, vote_hash=vote_hash,
                             contract_address='0x00000000000000000000000000000000c0ffee00')

    def verify_vote(self, user_id, election_id):
        vote_hash = self.recorded.get((user_id, election_id))
        return LedgerVerification(success=True, recorded=vote_hash is not None, vote_hash=vote_hash)


@pytest.fixture
def collaborators(tmp_path):
    return Collaborators(
        face_matcher=FakeFaceMatcher(),
        notifier=FakeNotifier(),
        ledger=FakeLedger(),
        audit_logger=AuditLogger(log_dir=str(tmp_path / 'logs')),
    )


@pytest.fixture
def app(tmp_path, collaborators):
    app = create_app(TestConfig(str(tmp_path)), collaborators=collaborators)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client


@pytest.fixture
def make_election():
    def _make(election_id=None, title='General Election 2025', status=ElectionStatus.ACTIVE.value,
              start=None, end=None, candidates=('Alice', 'Bob')):
        now = utcnow()
        election = Election(
            id=election_id,
            title=title,
            status=status,
            start_date=start or now - timedelta(days=1),
            end_date=end or now + timedelta(days=1),
        )
        db.session.add(election)
        db.session.flush()
        for name in candidates:
            db.session.add(Candidate(election_id=election.id, name=name, party='Independent'))
        db.session.commit()
        return election
    return _make


def _store_face(app):
    faces_dir = os.path.join(app.config['UPLOAD_FOLDER'], 'faces')
    os.makedirs(faces_dir, exist_ok=True)
    file_name = f'face_{secrets.token_hex(4)}.jpg'
    with open(os.path.join(faces_dir, file_name), 'wb') as f:
        f.write(FACE_BYTES)
    return f'faces/{file_name}'


@pytest.fixture
def make_voter(app):
    pwhash = PasswordHashingService()

    def _make(email='voter@example.com', name='Valid Voter', password=VOTER_PASSWORD,
              temp_password=None, face_verified=True, otp_required=False, election=None):
        temp_hash = pwhash.hash_password(temp_password) if temp_password else None
        user = User(
            role=Role.VOTER.value,
            name=name,
            email=email,
            voter_id='VS' + secrets.token_hex(4).upper(),
            date_of_birth=date(1990, 1, 1),
            password_hash=temp_hash or pwhash.hash_password(password),
            temp_password_hash=temp_hash,
            password_changed=temp_password is None,
            account_status=(AccountStatus.TEMP_PASSWORD.value if temp_password
                            else AccountStatus.ACTIVE.value),
            face_image=_store_face(app),
            face_verified=face_verified,
            otp_required=otp_required,
            authorized=True,
        )
        db.session.add(user)
        db.session.flush()
        if election is not None:
            db.session.add(ElectionVoterAuthorization(user_id=user.id, election_id=election.id))
            db.session.add(EligibleVoter(election_id=election.id, name=name, email=email,
                                         has_registered=True))
        db.session.commit()
        return user
    return _make


@pytest.fixture
def make_admin(app):
    pwhash = PasswordHashingService()

    def _make(email='admin@example.com', otp_required=True):
        admin = User(
            role=Role.ADMIN.value,
            name='Admin',
            email=email,
            password_hash=pwhash.hash_password(ADMIN_PASSWORD),
            password_changed=True,
            account_status=AccountStatus.ACTIVE.value,
            otp_required=otp_required,
            authorized=True,
        )
        db.session.add(admin)
        db.session.commit()
        return admin
    return _make


@pytest.fixture
def auth_header(app):
    tokens = TokenManager()

    def _header(user):
        return {'Authorization': f'Bearer {tokens.generate_session_token(user)}'}
    return _header


@pytest.fixture
def freeze_time(monkeypatch):
    """Pin ``_now()`` of the given service classes to a moving clock."""
    class Clock:
        def __init__(self):
            self.now = utcnow().replace(microsecond=0)

        def advance(self, **kwargs):
            self.now += timedelta(**kwargs)

    clock = Clock()

    def _freeze(*service_classes):
        for cls in service_classes:
            monkeypatch.setattr(cls, '_now', lambda self: clock.now)
        return clock
    return _freeze
