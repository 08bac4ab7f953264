# votesecure/encryption/password_hashing.py

import secrets
from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, VerificationError, InvalidHashError, HashingError

MIN_PASSWORD_LENGTH = 8

# Argon2id hashing for account passwords and one-time temporary passwords


class PasswordHashingService:
    def __init__(self):
        self.ph = PasswordHasher(
            time_cost=3,
            memory_cost=65536,
            parallelism=4,
            hash_len=32,
            salt_len=16,
        )

    def hash_password(self, password: str) -> str:
        if not password:
            raise ValueError("Password must not be empty")
        try:
            return self.ph.hash(password)
        except HashingError as e:
            raise ValueError(f"Password hashing failed: {str(e)}")

    def verify_password(self, password: str, hash_value: str) -> bool:
        if not password or not hash_value:
            return False
        try:
            self.ph.verify(hash_value, password)
            return True
        except VerifyMismatchError:
            return False
        except (VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, hash_value: str) -> bool:
        return self.ph.check_needs_rehash(hash_value)

    def is_acceptable_password(self, password: str) -> bool:
        return isinstance(password, str) and len(password) >= MIN_PASSWORD_LENGTH

    def generate_temporary_password(self) -> str:
        """16 hex characters, sent once to the voter and never stored in clear."""
        return secrets.token_hex(8)
