from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from werkzeug.security import generate_password_hash, check_password_hash

from models_sql import ROLE_ADMIN

# ------------------------------------------------------------
# Passwords
# ------------------------------------------------------------

def hash_password(password):
    return generate_password_hash(password)


def verify_password(password_hash, password):
    return check_password_hash(password_hash, password)


# ------------------------------------------------------------
# JWT tokens
# ------------------------------------------------------------

@dataclass(frozen=True)
class Caller:
    id: int
    email: str
    role: str

    @property
    def is_admin(self):
        return self.role == ROLE_ADMIN


class TokenService:

    def __init__(self, secret_key, algorithm="HS256", expiration_hours=24):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expiration = timedelta(hours=expiration_hours)

    def generate_token(self, user):
        payload = {
            "id": user.id,
            "email": user.email,
            "role": user.role,
            "exp": datetime.now(timezone.utc) + self.expiration,
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def decode_token(self, token):
        """Return the caller encoded in ``token``; raises ``jwt.InvalidTokenError``."""
        payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        return Caller(id=payload["id"], email=payload.get("email", ""), role=payload.get("role", ""))


# ------------------------------------------------------------
# Dependencies
# ------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_user(request: Request, credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme)):
    if credentials is None:
        raise HTTPException(status_code=401, detail="Access token required")

    tokens = request.app.state.tokens
    try:
        return tokens.decode_token(credentials.credentials)
    except jwt.ExpiredSignatureError:
        raise HTTPException(status_code=403, detail="Token expired")
    except (jwt.InvalidTokenError, KeyError):
        raise HTTPException(status_code=403, detail="Invalid or expired token")


def require_admin(current_user: Caller = Depends(get_current_user)):
    if not current_user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return current_user
