# votesecure/audit/audit_logger.py

import os
import json
import hashlib
import base64
import logging
import threading
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives import serialization
from votesecure.database.models import utcnow

# Append-only security audit trail: hash chaining and Ed25519 signatures

logger = logging.getLogger(__name__)


class AuditLogger:
    def __init__(self, log_dir='logs', signing_key_pem=None):
        self.log_dir = log_dir
        self.log_file = os.path.join(log_dir, 'audit.log')
        self.previous_hash = None
        self._lock = threading.Lock()

        os.makedirs(log_dir, exist_ok=True)

        if signing_key_pem:
            self.signing_key = serialization.load_pem_private_key(signing_key_pem.encode(), password=None)
        else:
            self.signing_key = Ed25519PrivateKey.generate()
        self._load_previous_hash()

    def _load_previous_hash(self):
        if os.path.exists(self.log_file):
            with open(self.log_file, 'r') as f:
                lines = [line for line in f.readlines() if line.strip()]
                if lines:
                    try:
                        last_entry = json.loads(lines[-1])
                        self.previous_hash = last_entry.get('hash')
                    except json.JSONDecodeError:
                        self.previous_hash = None

    def public_key_pem(self):
        return self.signing_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo).decode()

    def log_security_event(self, event_type, data, user_id=None):
        """Append one signed entry. Never raises; audit failures are logged."""
        try:
            with self._lock:
                log_entry = {
                    "timestamp": utcnow().isoformat(),
                    "event_type": event_type,
                    "data": data,
                    "user_id": user_id,
                    "previous_hash": self.previous_hash,
                }
                entry_json = json.dumps(log_entry, sort_keys=True, default=str)
                entry_hash = hashlib.sha256(entry_json.encode()).hexdigest()
                signature = self.signing_key.sign(entry_json.encode())

                log_entry['hash'] = entry_hash
                log_entry['signature'] = base64.b64encode(signature).decode()

                with open(self.log_file, 'a') as f:
                    f.write(json.dumps(log_entry, default=str) + "\n")

                self.previous_hash = entry_hash
        except Exception as e:
            logger.error("Audit log error for %s: %s", event_type, e)

    def verify_log_integrity(self, public_key=None):
        public_key = public_key or self.signing_key.public_key()
        if not os.path.exists(self.log_file):
            return True
        previous_hash = None
        try:
            with open(self.log_file, 'r') as f:
                for line in f:
                    if not line.strip():
                        continue
                    log_entry = json.loads(line)
                    if log_entry.get('previous_hash') != previous_hash:
                        return False
                    entry_copy = dict(log_entry)
                    signature = base64.b64decode(entry_copy.pop('signature'))
                    recorded_hash = entry_copy.pop('hash')
                    entry_json = json.dumps(entry_copy, sort_keys=True, default=str).encode()
                    if hashlib.sha256(entry_json).hexdigest() != recorded_hash:
                        return False
                    public_key.verify(signature, entry_json)
                    previous_hash = recorded_hash
        except (InvalidSignature, KeyError, ValueError):
            return False
        return True
