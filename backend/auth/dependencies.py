"""
FastAPI authentication dependency for the chat API.

Bearer tokens are Supabase Auth JWTs signed with the project's ECC (P-256)
key; they are verified against the project's JWKS endpoint. The verified
'sub' claim is the only source of the acting user_id. Any user identifier
supplied in a request body is ignored.
"""

import logging
from dataclasses import dataclass
from typing import Annotated, Any, Dict

from fastapi import Header, HTTPException, status
from jwt import PyJWKClient, decode
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError, PyJWKClientError

from backend.config import settings

logger = logging.getLogger(__name__)

_jwks_client: PyJWKClient | None = None


@dataclass
class AuthenticatedUser:
    """
    The caller of a protected route.

    Attributes:
        user_id: UUID from the token's 'sub' claim
        access_token: The raw JWT, used to build a per-request Supabase client
            so row level security applies to every query
    """
    user_id: str
    access_token: str


def _unauthorized(error: str, details: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "details": details},
    )


def get_jwks_client() -> PyJWKClient:
    """
    Lazily create the JWKS client. It caches signing keys between requests.

    Raises:
        ValueError: If SUPABASE_URL is not configured
    """
    global _jwks_client

    if _jwks_client is None:
        jwks_url = settings.SUPABASE_JWKS_URL
        if not jwks_url:
            raise ValueError("SUPABASE_URL is not configured; cannot verify access tokens.")

        logger.info(f"Initializing JWKS client with URL: {jwks_url}")
        _jwks_client = PyJWKClient(jwks_url, cache_keys=True, max_cached_keys=16)

    return _jwks_client


def _extract_bearer_token(authorization: str | None) -> str:
    if not authorization:
        logger.warning("Missing Authorization header")
        raise _unauthorized("unauthorized", "Missing Authorization header")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        logger.warning("Invalid Authorization header format")
        raise _unauthorized("unauthorized", "Invalid Authorization header format")

    return parts[1]


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    Verify signature, expiry, audience and issuer of a Supabase access token.

    Raises:
        jwt.exceptions.InvalidTokenError: (and subclasses) on any verification failure
        jwt.exceptions.PyJWKClientError: If the signing key cannot be resolved
    """
    signing_key = get_jwks_client().get_signing_key_from_jwt(token)
    issuer = f"{settings.SUPABASE_URL.rstrip('/')}/auth/v1"

    return decode(
        token,
        signing_key.key,
        algorithms=["ES256"],
        audience="authenticated",
        issuer=issuer,
        options={"require": ["exp", "sub"]},
    )


async def get_authenticated_user(
    authorization: Annotated[str | None, Header()] = None
) -> AuthenticatedUser:
    """
    Resolve the Authorization header to an AuthenticatedUser.

    Raises:
        HTTPException: 401 if the token is missing, malformed, expired or invalid

    Usage:
        @router.post("/chat/messages")
        async def send_message(
            auth_user: AuthenticatedUser = Depends(get_authenticated_user)
        ):
            supabase_client = get_supabase_client(auth_user.access_token)
    """
    token = _extract_bearer_token(authorization)

    try:
        payload = decode_access_token(token)
    except ExpiredSignatureError:
        logger.warning("Token has expired")
        raise _unauthorized("token_expired", "Authentication token has expired")
    except PyJWKClientError as e:
        logger.error(f"JWKS client error: {e}")
        raise _unauthorized("jwks_error", "Unable to verify token signature")
    except InvalidTokenError as e:
        logger.warning(f"Invalid token: {e}")
        raise _unauthorized("invalid_token", "Invalid authentication token")
    except ValueError as e:
        logger.error(f"Token verification is not configured: {e}")
        raise _unauthorized("unauthorized", "Token verification failed")

    user_id = payload.get("sub")
    if not user_id:
        logger.error("Token payload missing 'sub' claim")
        raise _unauthorized("unauthorized", "Invalid token: missing user ID")

    logger.debug(f"Token verified for user_id={user_id}")
    return AuthenticatedUser(user_id=str(user_id), access_token=token)
