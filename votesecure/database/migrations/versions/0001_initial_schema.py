"""initial schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2025-11-02 10:14:00

"""
from alembic import op
import sqlalchemy as sa


revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role', sa.String(20), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(254), nullable=False, unique=True),
        sa.Column('voter_id', sa.String(32), nullable=True, unique=True),
        sa.Column('date_of_birth', sa.Date(), nullable=True),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('temp_password_hash', sa.String(255), nullable=True),
        sa.Column('password_changed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('account_status', sa.String(20), nullable=False, server_default='TEMP_PASSWORD'),
        sa.Column('login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('account_locked_until', sa.DateTime(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('face_image', sa.String(255), nullable=True),
        sa.Column('face_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('otp_required', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('otp', sa.String(6), nullable=True),
        sa.Column('otp_expiry', sa.DateTime(), nullable=True),
        sa.Column('has_voted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('authorized', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('authorized_at', sa.DateTime(), nullable=True),
        sa.Column('authorized_by', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'elections',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('title', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )

    op.create_table(
        'candidates',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('election_id', sa.Integer(),
                  sa.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('party', sa.String(100), nullable=True),
    )

    op.create_table(
        'eligible_voters',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('election_id', sa.Integer(),
                  sa.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(254), nullable=False),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('has_registered', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('election_id', 'email', name='unique_election_email'),
    )
    op.create_index('ix_eligible_voters_election_id', 'eligible_voters', ['election_id'])
    op.create_index('ix_eligible_voters_email', 'eligible_voters', ['email'])

    op.create_table(
        'election_voter_authorization',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('election_id', sa.Integer(),
                  sa.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('authorized', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('has_voted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'election_id', name='unique_user_election_auth'),
    )

    op.create_table(
        'votes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('election_id', sa.Integer(),
                  sa.ForeignKey('elections.id', ondelete='CASCADE'), nullable=False),
        sa.Column('candidate_id', sa.Integer(),
                  sa.ForeignKey('candidates.id', ondelete='CASCADE'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('vote_hash', sa.String(64), nullable=True),
        sa.Column('transaction_hash', sa.String(100), nullable=True),
        sa.Column('blockchain_verified', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('verified_at', sa.DateTime(), nullable=True),
        sa.UniqueConstraint('user_id', 'election_id', name='unique_user_election_vote'),
    )

    op.create_table(
        'password_resets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('token', sa.String(255), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_password_resets_token', 'password_resets', ['token'])

    op.create_table(
        'voter_activity_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(),
                  sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=True),
        sa.Column('activity_type', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False),
        sa.Column('details', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(64), nullable=True),
        sa.Column('user_agent', sa.String(255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=True),
    )


def downgrade():
    op.drop_table('voter_activity_log')
    op.drop_index('ix_password_resets_token', table_name='password_resets')
    op.drop_table('password_resets')
    op.drop_table('votes')
    op.drop_table('election_voter_authorization')
    op.drop_index('ix_eligible_voters_email', table_name='eligible_voters')
    op.drop_index('ix_eligible_voters_election_id', table_name='eligible_voters')
    op.drop_table('eligible_voters')
    op.drop_table('candidates')
    op.drop_table('elections')
    op.drop_table('users')
