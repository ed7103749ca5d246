"""Password hashing, bearer tokens and the request-authentication dependency."""

import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import bcrypt
import jwt
from fastapi import Header, Request
from sqlalchemy.exc import IntegrityError

from lifeplanner_api.database import DatabaseService, User
from lifeplanner_api.errors import BadRequestError, ConflictError, ForbiddenError, UnauthorizedError

logger = logging.getLogger(__name__)

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72

MISSING_CREDENTIALS = "Email y contraseña son obligatorios"
INVALID_CREDENTIALS = "Credenciales inválidas"


@dataclass(frozen=True)
class CurrentUser:
    """Identity extracted from a verified bearer token"""
    user_id: int
    email: str


def hash_password(password: str, rounds: int = 10) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


@functools.lru_cache(maxsize=None)
def dummy_password_hash(rounds: int) -> str:
    """Process-wide hash checked against when the email is unknown; computed once per cost"""
    return hash_password("not-a-real-password", rounds=rounds)


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


class TokenService:
    """Issues and verifies HS256 JWTs carrying ``{userId, email}``."""

    ALGORITHM = "HS256"

    def __init__(self, secret: str, expires_in_seconds: int):
        self.secret = secret
        self.expires_in = timedelta(seconds=expires_in_seconds)

    def issue(self, user_id: int, email: str, now: Optional[datetime] = None) -> str:
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "userId": user_id,
            "email": email,
            "iat": issued_at,
            "exp": issued_at + self.expires_in,
        }
        return jwt.encode(payload, self.secret, algorithm=self.ALGORITHM)

    def verify(self, token: str) -> CurrentUser:
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.ALGORITHM],
                options={"require": ["exp"]},
            )
        except jwt.PyJWTError as exc:
            logger.debug("Rejected bearer token: %s", exc)
            raise ForbiddenError("Token inválido") from exc

        user_id = payload.get("userId")
        email = payload.get("email")
        if not isinstance(user_id, int) or not isinstance(email, str):
            raise ForbiddenError("Token inválido")
        return CurrentUser(user_id=user_id, email=email)


def parse_authorization_header(authorization: Optional[str]) -> str:
    """Return the token from ``Bearer <token>``"""
    if not authorization:
        raise UnauthorizedError("Token requerido")
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise UnauthorizedError("Token malformado")
    return parts[1]


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> CurrentUser:
    """FastAPI dependency guarding every protected route"""
    token = parse_authorization_header(authorization)
    return request.app.state.token_service.verify(token)


class AuthService:
    """Registration and login against the users table"""

    def __init__(self, db: DatabaseService, tokens: TokenService, bcrypt_rounds: int = 10):
        self.db = db
        self.tokens = tokens
        self.bcrypt_rounds = bcrypt_rounds

    @staticmethod
    def _require_credentials(email: Optional[str], password: Optional[str]) -> None:
        if not email or not password:
            raise BadRequestError(MISSING_CREDENTIALS)

    def register(self, email: Optional[str], password: Optional[str]) -> User:
        self._require_credentials(email, password)
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise BadRequestError(f"La contraseña no puede superar {MAX_PASSWORD_BYTES} bytes")

        if self.db.get_user_by_email(email) is not None:
            raise ConflictError("El email ya está registrado")

        password_hash = hash_password(password, rounds=self.bcrypt_rounds)
        try:
            user = self.db.create_user(email, password_hash)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration of the same email
            self.db.db.rollback()
            raise ConflictError("El email ya está registrado") from exc
        logger.info("Registered user %s", user.id)
        return user

    def login(self, email: Optional[str], password: Optional[str]) -> str:
        self._require_credentials(email, password)

        user = self.db.get_user_by_email(email)
        if user is None:
            # Spend the same bcrypt work as a real check so timing does not reveal the email
            verify_password(password, dummy_password_hash(self.bcrypt_rounds))
            raise UnauthorizedError(INVALID_CREDENTIALS)

        if not verify_password(password, user.password_hash):
            raise UnauthorizedError(INVALID_CREDENTIALS)

        return self.tokens.issue(user.id, user.email)
