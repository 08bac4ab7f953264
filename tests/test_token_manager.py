# tests/test_token_manager.py
import pytest
from datetime import timedelta
from types import SimpleNamespace
from flask import Flask, jsonify
from flask_jwt_extended import JWTManager, jwt_required
from votesecure.security.token_manager import TokenManager, SESSION_SCOPE, FACE_VERIFICATION_SCOPE

@pytest.fixture
def app():
    app = Flask(__name__)
    app.config['TESTING'] = True
    app.config['JWT_SECRET_KEY'] = "test-secret-key-with-enough-length-for-hs256"
    JWTManager(app)
    return app

@pytest.fixture
def client(app):
    with app.test_client() as client:
        yield client

@pytest.fixture
def token_manager(app):
    return TokenManager(app)

@pytest.fixture
def user():
    return SimpleNamespace(id=42, role='voter', email='voter@example.com')


def test_generate_and_validate_session_token(app, token_manager, user):
    with app.app_context():
        token = token_manager.generate_session_token(user)
        assert isinstance(token, str)
        claims = token_manager.validate_token(token)
    assert claims['sub'] == '42'
    assert claims['role'] == 'voter'
    assert claims['email'] == 'voter@example.com'
    assert claims['scope'] == SESSION_SCOPE


def test_face_token_is_scoped_and_short_lived(app, token_manager, user):
    with app.app_context():
        token = token_manager.generate_face_token(user)
        claims = token_manager.validate_token(token)
    assert claims['scope'] == FACE_VERIFICATION_SCOPE
    assert claims['exp'] - claims['iat'] == int(timedelta(minutes=15).total_seconds())


def test_expired_token_is_rejected(app, token_manager, user):
    app.config['FACE_TOKEN_EXPIRES'] = timedelta(seconds=-1)
    with app.app_context():
        token = token_manager.generate_face_token(user)
        assert token_manager.validate_token(token) is None


def test_tampered_token_is_rejected(app, token_manager, user):
    with app.app_context():
        token = token_manager.generate_session_token(user)
        assert token_manager.validate_token(token[:-2] + 'xx') is None


def test_get_identity_and_scope(app, client, token_manager, user):
    @app.route("/whoami")
    @jwt_required()
    def whoami():
        return jsonify(identity=token_manager.get_identity(), scope=token_manager.get_scope())

    with app.app_context():
        token = token_manager.generate_session_token(user)

    rv = client.get("/whoami", headers={"Authorization": f"Bearer {token}"})
    assert rv.get_json() == {'identity': 42, 'scope': SESSION_SCOPE}
