# votesecure/voting/ledger.py

import hashlib
import logging
import time
from dataclasses import dataclass
from typing import Optional
import requests

# Client side of the external vote ledger. The ledger is not transactional
# with the local database; callers roll back locally when record_vote fails.

logger = logging.getLogger(__name__)


@dataclass
class LedgerReceipt:
    success: bool
    transaction_hash: Optional[str] = None
    vote_hash: Optional[str] = None
    contract_address: Optional[str] = None
    message: str = ''
    skipped: bool = False


@dataclass
class LedgerVerification:
    success: bool
    recorded: bool = False
    vote_hash: Optional[str] = None
    message: str = ''


def generate_vote_hash(election_id, candidate_id, user_id, timestamp=None):
    timestamp = int(time.time()) if timestamp is None else int(timestamp)
    data = f"{election_id}-{candidate_id}-{user_id}-{timestamp}"
    return hashlib.sha256(data.encode()).hexdigest()


class LedgerClient:
    def record_vote(self, user_id, election_id, candidate_id) -> LedgerReceipt:
        raise NotImplementedError

    def verify_vote(self, user_id, election_id) -> LedgerVerification:
        raise NotImplementedError


class OfflineLedgerClient(LedgerClient):
    """Used when no ledger gateway is configured; records nothing remotely."""

    def record_vote(self, user_id, election_id, candidate_id):
        vote_hash = generate_vote_hash(election_id, candidate_id, user_id)
        logger.info("Ledger not configured, vote for election %s kept locally only", election_id)
        return LedgerReceipt(success=True, vote_hash=vote_hash, skipped=True,
                             message='Ledger not configured - vote stored locally only')

    def verify_vote(self, user_id, election_id):
        return LedgerVerification(success=False, message='Ledger not configured')


class HttpLedgerClient(LedgerClient):
    """JSON client for the ledger gateway.

    ``POST {base}/votes`` with ``{voter, election_id, candidate_id, vote_hash}``
    answers ``{transaction_hash}``; ``GET {base}/votes/{election_id}/{voter}``
    answers ``{recorded, vote_hash}``.
    """

    def __init__(self, base_url, contract_address=None, timeout=15):
        self.base_url = base_url.rstrip('/')
        self.contract_address = contract_address or None
        self.timeout = timeout

    def record_vote(self, user_id, election_id, candidate_id):
        vote_hash = generate_vote_hash(election_id, candidate_id, user_id)
        payload = {
            'voter': str(user_id),
            'election_id': election_id,
            'candidate_id': candidate_id,
            'vote_hash': vote_hash,
        }
        try:
            response = requests.post(f"{self.base_url}/votes", json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("Ledger submission failed for election %s: %s", election_id, e)
            return LedgerReceipt(success=False, vote_hash=vote_hash,
                                 message='Failed to record vote on blockchain')
        if response.status_code not in (200, 201):
            logger.error("Ledger rejected vote for election %s: %s %s",
                         election_id, response.status_code, response.text[:200])
            return LedgerReceipt(success=False, vote_hash=vote_hash,
                                 message='Failed to record vote on blockchain')
        try:
            body = response.json()
        except ValueError:
            body = {}
        tx_hash = body.get('transaction_hash')
        if not tx_hash:
            return LedgerReceipt(success=False, vote_hash=vote_hash,
                                 message='Ledger response missing transaction hash')
        return LedgerReceipt(success=True, transaction_hash=tx_hash, vote_hash=vote_hash,
                             contract_address=self.contract_address,
                             message='Vote recorded on blockchain')

    def verify_vote(self, user_id, election_id):
        try:
            response = requests.get(f"{self.base_url}/votes/{election_id}/{user_id}",
                                    timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("Ledger verification failed for election %s: %s", election_id, e)
            return LedgerVerification(success=False, message=str(e))
        if response.status_code == 404:
            return LedgerVerification(success=True, recorded=False)
        if response.status_code != 200:
            return LedgerVerification(success=False, message=f"HTTP {response.status_code}")
        try:
            body = response.json()
        except ValueError:
            return LedgerVerification(success=False, message='Invalid ledger response')
        return LedgerVerification(success=True, recorded=bool(body.get('recorded')),
                                  vote_hash=body.get('vote_hash'))
