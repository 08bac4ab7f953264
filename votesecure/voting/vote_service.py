# votesecure/voting/vote_service.py
"""Vote casting and per-voter vote status.

``cast_vote`` runs as one transaction. The voter's account row is locked
first so that concurrent casts by the same voter serialize on it; the
existing-vote check therefore sees any vote committed by a competing
request. The unique (user, election) constraint on ``votes`` is only a
backstop and is reported as ``ALREADY_VOTED`` as well.

The ledger write happens after the local insert and before the commit. A
ledger failure rolls the local insert back. A ledger success followed by a
failed local commit leaves a ledger record with no local vote; that case is
logged at ERROR with both hashes for reconciliation.
"""

import logging
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from votesecure.audit.activity_log import ActivityLogger
from votesecure.database.models import (Candidate, Election, ElectionStatus, ElectionVoterAuthorization,
                                        EligibleVoter, User, Vote, utcnow)
from votesecure.errors import (ForbiddenError, NotFoundError, ValidationError, VoteErrorCode,
                               VoteRejected, VoteSecureError)
from votesecure.security.input_validator import InputValidator

logger = logging.getLogger(__name__)


class VotingService:
    def __init__(self, session, ledger, audit_logger=None):
        self.session = session
        self.ledger = ledger
        self.audit_logger = audit_logger
        self.validator = InputValidator()
        self.activity = ActivityLogger(session, audit_logger)

    def _now(self):
        return utcnow()

    def cast_vote(self, user, election_id, candidate_id):
        election_key = self.validator.parse_positive_int(election_id)
        candidate_key = self.validator.parse_positive_int(candidate_id)
        if election_key is None or candidate_key is None:
            raise ValidationError("Election and candidate are required")

        try:
            return self._cast_vote(user.id, election_key, candidate_key)
        except VoteSecureError:
            self.session.rollback()
            raise
        except IntegrityError:
            self.session.rollback()
            logger.warning("Duplicate vote blocked by constraint for user %s election %s",
                           user.id, election_key)
            raise VoteRejected(VoteErrorCode.ALREADY_VOTED, "You have already voted in this election")
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Vote casting failed for user %s election %s: %s", user.id, election_key, e)
            raise VoteRejected(VoteErrorCode.INTERNAL_ERROR, "Failed to cast vote. Please try again.")

    def _cast_vote(self, user_id, election_id, candidate_id):
        now = self._now()

        voter = (self.session.query(User)
                 .filter(User.id == user_id)
                 .with_for_update()
                 .first())
        if voter is None:
            raise NotFoundError("User not found")

        existing = (self.session.query(Vote)
                    .filter_by(user_id=user_id, election_id=election_id)
                    .with_for_update()
                    .first())
        if existing is not None:
            self.activity.log(user_id, 'vote', 'failed', f'Already voted in election {election_id}')
            self.session.commit()
            raise VoteRejected(VoteErrorCode.ALREADY_VOTED, "You have already voted in this election")

        election = self.session.get(Election, election_id)
        if election is None or not election.is_open(now):
            raise VoteRejected(VoteErrorCode.INACTIVE_ELECTION, self._inactive_message(election, now))

        candidate = (self.session.query(Candidate)
                     .filter_by(id=candidate_id, election_id=election_id)
                     .first())
        if candidate is None:
            raise VoteRejected(VoteErrorCode.INVALID_CANDIDATE, "Candidate does not belong to this election")

        authorization = (self.session.query(ElectionVoterAuthorization)
                         .filter_by(user_id=user_id, election_id=election_id)
                         .with_for_update()
                         .first())
        if not self._is_eligible(voter, election_id, authorization):
            raise ForbiddenError("You are not authorized to vote in this election. "
                                 "Please contact the administrator.")

        vote = Vote(user_id=user_id, election_id=election_id, candidate_id=candidate_id, created_at=now)
        self.session.add(vote)
        voter.has_voted = True
        if authorization is not None:
            authorization.has_voted = True
        self.session.flush()

        try:
            receipt = self.ledger.record_vote(user_id, election_id, candidate_id)
        except Exception as e:
            logger.error("Ledger client raised for election %s: %s", election_id, e)
            receipt = None
        if receipt is None or not receipt.success:
            self.session.rollback()
            message = receipt.message if receipt is not None and receipt.message else \
                'Failed to record vote on blockchain'
            self.activity.log(user_id, 'vote', 'failed', f'Ledger error: {message}')
            self.session.commit()
            raise VoteRejected(VoteErrorCode.BLOCKCHAIN_ERROR, message)

        vote.vote_hash = receipt.vote_hash
        vote.transaction_hash = receipt.transaction_hash
        self.activity.log(user_id, 'vote', 'success', f'Vote cast in election {election_id}')
        try:
            self.session.commit()
        except SQLAlchemyError:
            if not receipt.skipped:
                logger.error("Ledger recorded vote but local commit failed: user=%s election=%s "
                             "vote_hash=%s transaction_hash=%s",
                             user_id, election_id, receipt.vote_hash, receipt.transaction_hash)
            raise

        if self.audit_logger:
            self.audit_logger.log_security_event('vote_cast', {
                'election_id': election_id,
                'vote_hash': receipt.vote_hash,
                'transaction_hash': receipt.transaction_hash,
            }, user_id=user_id)
        logger.info("Vote %s cast in election %s", vote.id, election_id)

        result = {
            'success': True,
            'message': 'Vote cast successfully',
            'vote_id': vote.id,
            'vote_hash': receipt.vote_hash,
            'transaction_hash': receipt.transaction_hash,
            'blockchain_address': receipt.contract_address,
        }
        if receipt.skipped:
            result['blockchain_note'] = receipt.message
        return result

    def _is_eligible(self, voter, election_id, authorization):
        if authorization is not None:
            return bool(authorization.authorized)
        eligible = (self.session.query(EligibleVoter.id)
                    .filter_by(election_id=election_id, email=voter.email, active=True)
                    .first())
        return eligible is not None

    def _inactive_message(self, election, now):
        if election is None:
            return "Election not found"
        message = 'Election is not currently active. '
        if election.status != ElectionStatus.ACTIVE.value:
            return message + f"Election status is {election.status}."
        if now < election.start_date:
            return message + f"Election starts at: {election.start_date:%Y-%m-%d %H:%M:%S}"
        return message + f"Election ended at: {election.end_date:%Y-%m-%d %H:%M:%S}"

    def vote_status(self, user, election_id=None):
        if election_id in (None, ''):
            return self._status_all(user)
        election_key = self.validator.parse_positive_int(election_id)
        if election_key is None:
            raise ValidationError("Invalid election ID")
        return self._status_for(user, election_key)

    def _status_all(self, user):
        now = self._now()
        elections = (self.session.query(Election)
                     .filter(Election.status == ElectionStatus.ACTIVE.value,
                             Election.end_date >= now)
                     .order_by(Election.start_date)
                     .all())
        voted = {row.election_id for row in
                 self.session.query(Vote.election_id).filter(Vote.user_id == user.id).all()}
        return {
            'success': True,
            'elections': [
                {
                    'election_id': election.id,
                    'title': election.title,
                    'start_date': election.start_date.isoformat(),
                    'end_date': election.end_date.isoformat(),
                    'has_voted': election.id in voted,
                }
                for election in elections
            ],
        }

    def _status_for(self, user, election_id):
        election = self.session.get(Election, election_id)
        if election is None:
            raise NotFoundError("Election not found")

        vote = self.session.query(Vote).filter_by(user_id=user.id, election_id=election_id).first()
        result = {
            'success': True,
            'election': {
                'id': election.id,
                'title': election.title,
                'status': election.status,
                'start_date': election.start_date.isoformat(),
                'end_date': election.end_date.isoformat(),
            },
            'has_voted': vote is not None,
        }
        if vote is None:
            return result

        if not vote.blockchain_verified and vote.transaction_hash:
            self._verify_on_ledger(vote)

        result['vote'] = {
            'candidate_id': vote.candidate_id,
            'candidate_name': vote.candidate.name if vote.candidate else None,
            'party': vote.candidate.party if vote.candidate else None,
            'created_at': vote.created_at.isoformat() if vote.created_at else None,
            'vote_hash': vote.vote_hash,
            'transaction_hash': vote.transaction_hash,
            'blockchain_verified': bool(vote.blockchain_verified),
            'verified_at': vote.verified_at.isoformat() if vote.verified_at else None,
        }
        return result

    def _verify_on_ledger(self, vote):
        verification = self.ledger.verify_vote(vote.user_id, vote.election_id)
        if not verification.success:
            logger.info("Ledger verification unavailable for vote %s: %s", vote.id, verification.message)
            return
        if not verification.recorded:
            logger.warning("Vote %s not found on ledger", vote.id)
            return
        try:
            vote.blockchain_verified = True
            vote.verified_at = self._now()
            self.session.commit()
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.error("Could not store ledger verification for vote %s: %s", vote.id, e)
