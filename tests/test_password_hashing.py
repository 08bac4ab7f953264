import re
import pytest
from votesecure.encryption.password_hashing import PasswordHashingService

@pytest.fixture
def password_service():
    return PasswordHashingService()


def test_hash_and_verify_password(password_service):
    password = "StrongPass123!"
    hashed = password_service.hash_password(password)

    # Verify the original password works
    assert password_service.verify_password(password, hashed) is True

    # Wrong password should fail
    assert password_service.verify_password("WrongPass456!", hashed) is False

    # Check if hash needs rehash (should be False immediately)
    assert password_service.needs_rehash(hashed) is False


def test_verify_password_rejects_garbage_hash(password_service):
    assert password_service.verify_password("whatever1", "not-an-argon2-hash") is False
    assert password_service.verify_password("", "anything") is False
    assert password_service.verify_password("whatever1", None) is False


def test_hash_password_rejects_empty(password_service):
    with pytest.raises(ValueError):
        password_service.hash_password("")


def test_is_acceptable_password(password_service):
    assert password_service.is_acceptable_password("12345678") is True
    assert password_service.is_acceptable_password("1234567") is False
    assert password_service.is_acceptable_password(None) is False


def test_generate_temporary_password(password_service):
    first = password_service.generate_temporary_password()
    second = password_service.generate_temporary_password()
    assert re.fullmatch(r'[0-9a-f]{16}', first)
    assert first != second
