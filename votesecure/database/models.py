# votesecure/database/models.py

from datetime import datetime, timezone
from enum import Enum
from votesecure import db


def utcnow():
    """Naive UTC timestamp; all DateTime columns store naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_email(email):
    return (email or '').strip().lower()


class Role(Enum):
    ADMIN = "admin"
    VOTER = "voter"


class AccountStatus(Enum):
    TEMP_PASSWORD = "TEMP_PASSWORD"
    ACTIVE = "ACTIVE"
    LOCKED = "LOCKED"
    SUSPENDED = "SUSPENDED"


class ElectionStatus(Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class User(db.Model):
    __tablename__ = 'users'
    id = db.Column(db.Integer, primary_key=True)
    role = db.Column(db.String(20), nullable=False, default=Role.VOTER.value)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(254), unique=True, nullable=False)  # always normalized
    voter_id = db.Column(db.String(32), unique=True, nullable=True)
    date_of_birth = db.Column(db.Date, nullable=True)

    password_hash = db.Column(db.String(255), nullable=False)
    temp_password_hash = db.Column(db.String(255), nullable=True)
    password_changed = db.Column(db.Boolean, nullable=False, default=False)
    account_status = db.Column(db.String(20), nullable=False, default=AccountStatus.TEMP_PASSWORD.value)

    login_attempts = db.Column(db.Integer, nullable=False, default=0)
    account_locked_until = db.Column(db.DateTime, nullable=True)
    last_login = db.Column(db.DateTime, nullable=True)

    face_image = db.Column(db.String(255), nullable=True)  # relative to UPLOAD_FOLDER
    face_verified = db.Column(db.Boolean, nullable=False, default=False)

    otp_required = db.Column(db.Boolean, nullable=False, default=False)
    otp = db.Column(db.String(6), nullable=True)
    otp_expiry = db.Column(db.DateTime, nullable=True)

    has_voted = db.Column(db.Boolean, nullable=False, default=False)
    authorized = db.Column(db.Boolean, nullable=False, default=False)
    authorized_at = db.Column(db.DateTime, nullable=True)
    authorized_by = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='SET NULL'), nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow)

    votes = db.relationship('Vote', backref='voter', lazy=True, passive_deletes=True)

    @property
    def is_admin(self):
        return self.role == Role.ADMIN.value

    def to_public_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'voter_id': self.voter_id,
            'role': self.role,
            'has_voted': bool(self.has_voted),
            'face_image': self.face_image,
            'authorized': bool(self.authorized),
            'password_changed': bool(self.password_changed),
            'account_status': self.account_status,
        }

    def __repr__(self):
        return f'<User {self.id} {self.role} {self.email}>'


class Election(db.Model):
    __tablename__ = 'elections'
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    start_date = db.Column(db.DateTime, nullable=False)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=ElectionStatus.DRAFT.value)
    created_at = db.Column(db.DateTime, default=utcnow)

    candidates = db.relationship('Candidate', backref='election', lazy=True, passive_deletes=True)

    def is_open(self, now):
        return (self.status == ElectionStatus.ACTIVE.value
                and self.start_date <= now <= self.end_date)


class Candidate(db.Model):
    __tablename__ = 'candidates'
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    party = db.Column(db.String(100), nullable=True)


class EligibleVoter(db.Model):
    __tablename__ = 'eligible_voters'
    __table_args__ = (
        db.UniqueConstraint('election_id', 'email', name='unique_election_email'),
    )
    id = db.Column(db.Integer, primary_key=True)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id', ondelete='CASCADE'),
                            nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(254), nullable=False, index=True)  # always normalized
    active = db.Column(db.Boolean, nullable=False, default=True)
    has_registered = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, nullable=True, onupdate=utcnow)


class ElectionVoterAuthorization(db.Model):
    __tablename__ = 'election_voter_authorization'
    __table_args__ = (
        db.UniqueConstraint('user_id', 'election_id', name='unique_user_election_auth'),
    )
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False)
    authorized = db.Column(db.Boolean, nullable=False, default=True)
    has_voted = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, default=utcnow)


class Vote(db.Model):
    __tablename__ = 'votes'
    # Backstop only; the casting transaction locks before inserting.
    __table_args__ = (
        db.UniqueConstraint('user_id', 'election_id', name='unique_user_election_vote'),
    )
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    election_id = db.Column(db.Integer, db.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False)
    candidate_id = db.Column(db.Integer, db.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    vote_hash = db.Column(db.String(64), nullable=True)
    transaction_hash = db.Column(db.String(100), nullable=True)
    blockchain_verified = db.Column(db.Boolean, nullable=False, default=False)
    verified_at = db.Column(db.DateTime, nullable=True)

    candidate = db.relationship('Candidate', lazy='joined')

    def __repr__(self):
        return f'<Vote {self.id} by User {self.user_id} in Election {self.election_id}>'


class PasswordReset(db.Model):
    __tablename__ = 'password_resets'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'),
                        unique=True, nullable=False)
    token = db.Column(db.String(255), nullable=False, index=True)
    expires_at = db.Column(db.DateTime, nullable=False)
    used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)


class VoterActivityLog(db.Model):
    __tablename__ = 'voter_activity_log'
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id', ondelete='CASCADE'), nullable=True)
    activity_type = db.Column(db.String(50), nullable=False)
    status = db.Column(db.String(20), nullable=False)
    details = db.Column(db.Text, nullable=True)
    ip_address = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
