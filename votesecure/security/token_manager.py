# votesecure/security/token_manager.py
from datetime import timedelta
from flask_jwt_extended import create_access_token, decode_token, get_jwt, get_jwt_identity
from flask import current_app, Flask

SESSION_SCOPE = "session"
FACE_VERIFICATION_SCOPE = "face_verification"


# JWT session and scoped tokens using Flask-JWT-Extended
class TokenManager:
    def __init__(self, app: Flask = None):
        if app:
            self.init_app(app)

    def init_app(self, app: Flask):
        app.config.setdefault("JWT_ACCESS_TOKEN_EXPIRES", timedelta(hours=24))
        app.config.setdefault("FACE_TOKEN_EXPIRES", timedelta(minutes=15))

    def generate_session_token(self, user) -> str:
        # Full session token: identity is the user id, role travels as a claim
        return create_access_token(
            identity=str(user.id),
            additional_claims={"role": user.role, "email": user.email, "scope": SESSION_SCOPE},
        )

    def generate_face_token(self, user) -> str:
        # Short-lived token only good for the face verification step
        return create_access_token(
            identity=str(user.id),
            additional_claims={"role": user.role, "email": user.email, "scope": FACE_VERIFICATION_SCOPE},
            expires_delta=current_app.config["FACE_TOKEN_EXPIRES"],
        )

    def validate_token(self, token: str):
        # Return the decoded claims if token is valid, else None.
        try:
            return decode_token(token, allow_expired=False)
        except Exception as e:
            current_app.logger.warning(f"Token validation failed: {str(e)}")
            return None

    def get_identity(self):
        # Return the current user id from the JWT in request context.
        identity = get_jwt_identity()
        return int(identity) if identity is not None else None

    def get_scope(self):
        return get_jwt().get("scope", SESSION_SCOPE)
