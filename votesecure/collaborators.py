# votesecure/collaborators.py

from dataclasses import dataclass
from votesecure.audit.audit_logger import AuditLogger
from votesecure.authentication.face_matching import FaceMatcher, HttpFaceMatcher, UnconfiguredFaceMatcher
from votesecure.notifications.notifier import MailNotifier, Notifier
from votesecure.voting.ledger import HttpLedgerClient, LedgerClient, OfflineLedgerClient


@dataclass
class Collaborators:
    """External services the request handlers hand to the service layer."""
    face_matcher: FaceMatcher
    notifier: Notifier
    ledger: LedgerClient
    audit_logger: AuditLogger

    @classmethod
    def from_config(cls, config):
        if config.get('FACE_MATCH_URL'):
            face_matcher = HttpFaceMatcher(config['FACE_MATCH_URL'], timeout=config.get('FACE_MATCH_TIMEOUT', 10))
        else:
            face_matcher = UnconfiguredFaceMatcher()

        if config.get('LEDGER_URL'):
            ledger = HttpLedgerClient(config['LEDGER_URL'],
                                      contract_address=config.get('LEDGER_CONTRACT_ADDRESS'),
                                      timeout=config.get('LEDGER_TIMEOUT', 15))
        else:
            ledger = OfflineLedgerClient()

        return cls(
            face_matcher=face_matcher,
            notifier=MailNotifier(),
            ledger=ledger,
            audit_logger=AuditLogger(config['AUDIT_LOG_DIR'], config.get('AUDIT_SIGNING_KEY')),
        )
