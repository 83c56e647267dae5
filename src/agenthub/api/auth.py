"""
Bearer token verification for the chat API.

Tokens are minted by the account service. The chat service never issues
them; it checks the signature and standard claims, then maps the subject
and profile claims onto a UserContext.

Configuration (environment):
    JWT_SECRET              shared HMAC secret
    JWT_ALGORITHM           HS256 | HS384 | HS512 (default HS256)
    JWT_ISSUER              expected ``iss``, checked only when set
    JWT_AUDIENCE            expected ``aud``, checked only when set
    JWT_CLOCK_SKEW_SECONDS  leeway for ``exp``/``iat`` (default 30)
    REQUIRE_AUTH            set to ``false`` for local development only
"""

from __future__ import annotations

import logging
import os
from typing import Any, Optional, Union

import jwt
from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from ..domain.entities import UserContext

logger = logging.getLogger(__name__)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


class JWTConfig:
    """Token settings, read once at import."""

    SECRET: Optional[str] = os.getenv("JWT_SECRET")
    ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    ISSUER: Optional[str] = os.getenv("JWT_ISSUER")
    AUDIENCE: Optional[str] = os.getenv("JWT_AUDIENCE")
    REQUIRE_AUTH: bool = _env_flag("REQUIRE_AUTH", "true")
    CLOCK_SKEW_SECONDS: int = int(os.getenv("JWT_CLOCK_SKEW_SECONDS", "30"))

    USER_ID_CLAIM: str = "sub"
    ALLOWED_ALGORITHMS: frozenset[str] = frozenset({"HS256", "HS384", "HS512"})

    @classmethod
    def validate_algorithm(cls) -> str:
        """Normalized algorithm name.

        Raises:
            ValueError: For ``none`` or anything outside the HMAC family
        """
        algorithm = (cls.ALGORITHM or "").upper()
        if algorithm not in cls.ALLOWED_ALGORITHMS:
            raise ValueError(
                f"Unsupported JWT algorithm {cls.ALGORITHM!r}; "
                f"expected one of {sorted(cls.ALLOWED_ALGORITHMS)}"
            )
        return algorithm

    @classmethod
    def get_verification_key(cls) -> str:
        if not cls.SECRET:
            raise ValueError("JWT_SECRET is not set")
        return cls.SECRET


class TokenPayload(BaseModel):
    """Claims taken from a verified token."""

    user_id: str
    email: Optional[str] = None
    username: Optional[str] = None
    session_id: Optional[str] = None
    iss: Optional[str] = None
    aud: Optional[Union[str, list[str]]] = None
    exp: Optional[int] = None
    iat: Optional[int] = None

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "TokenPayload":
        return cls(
            user_id=claims[JWTConfig.USER_ID_CLAIM],
            **{
                name: claims.get(name)
                for name in ("email", "username", "session_id", "iss", "aud", "exp", "iat")
            },
        )

    def to_context(self) -> UserContext:
        return UserContext(
            user_id=self.user_id,
            email=self.email,
            username=self.username,
            session_id=self.session_id,
        )


class AuthenticationError(HTTPException):
    """401 with a Bearer challenge."""

    def __init__(self, detail: str):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


DEV_PAYLOAD = TokenPayload(
    user_id="dev-user",
    email="dev@localhost",
    username="dev",
    session_id="dev-session",
)


def _check_config() -> None:
    """Fail with 500 when auth is on but cannot verify anything."""
    if not JWTConfig.REQUIRE_AUTH:
        logger.warning("REQUIRE_AUTH=false: requests run as the dev user")
        return

    try:
        JWTConfig.validate_algorithm()
        JWTConfig.get_verification_key()
    except ValueError as e:
        logger.error(f"JWT misconfigured: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Server authentication not configured",
        ) from e


def _extract_token(authorization: Optional[str]) -> str:
    """Return the token part of a ``Bearer <token>`` header."""
    if not authorization:
        raise AuthenticationError("Authorization header required")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token or " " in token:
        raise AuthenticationError(
            "Invalid authorization header format. Expected: Bearer <token>"
        )
    return token


def _decode(token: str) -> dict[str, Any]:
    return jwt.decode(
        token,
        JWTConfig.get_verification_key(),
        algorithms=[JWTConfig.validate_algorithm()],
        issuer=JWTConfig.ISSUER,
        audience=JWTConfig.AUDIENCE,
        leeway=JWTConfig.CLOCK_SKEW_SECONDS,
        options={
            "require": ["exp"],
            "verify_aud": bool(JWTConfig.AUDIENCE),
        },
    )


def _validate_token(token: str) -> TokenPayload:
    """Verify a token and return its claims.

    Raises:
        AuthenticationError: Bad signature, expired, wrong iss/aud, or no subject
    """
    try:
        claims = _decode(token)
    except jwt.ExpiredSignatureError:
        logger.info("Rejected expired token")
        raise AuthenticationError("Token has expired")
    except (jwt.InvalidIssuerError, jwt.InvalidAudienceError) as e:
        logger.warning(f"Rejected token claims: {e}")
        raise AuthenticationError(f"Invalid token claims: {e}")
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected token: {e}")
        raise AuthenticationError("Invalid token")

    subject = claims.get(JWTConfig.USER_ID_CLAIM)
    if not isinstance(subject, str) or not subject:
        logger.warning("Rejected token without a subject")
        raise AuthenticationError(f"Token missing required claim: {JWTConfig.USER_ID_CLAIM}")

    return TokenPayload.from_claims(claims)


async def validate_jwt_token(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> TokenPayload:
    """Dependency: the verified claims of the request's bearer token."""
    _check_config()

    if not JWTConfig.REQUIRE_AUTH:
        return DEV_PAYLOAD

    return _validate_token(_extract_token(authorization))


def get_user_context(
    token_payload: TokenPayload = Depends(validate_jwt_token),
) -> UserContext:
    """Dependency: the authenticated caller."""
    return token_payload.to_context()
