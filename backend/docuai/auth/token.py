"""
Bearer Token Authentication — OIDC-Compatible
═════════════════════════════════════════════

Every /api route receives a verified principal (TokenPayload). Handlers
never read identity from the request body or query string.

Layers
──────
  _JWKSCache     Async JWKS fetcher with TTL + key-rotation handling
  JWTDecoder     RS256 decode + claim validation → TokenPayload
  DevAuthenticator
                 AUTH_MODE=disabled only: every request resolves to the
                 configured DEV_USER_ID. Rejected by Settings in production.

get_current_user() is the FastAPI dependency; it delegates to whichever
authenticator the app factory stored on app.state.

Token rules
───────────
  • RS256 only; expiry, issuer and audience are verified on every request.
  • JWKS is cached for one hour; an unknown kid forces one refresh.
  • All failures are 401 with WWW-Authenticate: Bearer and are logged with
    the request_id taken from X-Request-ID.
"""

from __future__ import annotations

import logging
import time
from typing import Annotated

import httpx
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwk, jwt
from pydantic import BaseModel

from docuai.core.config import Settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# ---------------------------------------------------------------------------
# Verified token payload
# ---------------------------------------------------------------------------

class TokenPayload(BaseModel):
    """Parsed, validated JWT claims passed to route handlers."""
    sub:   str          # provider user ID; owner key for documents
    email: str = ""
    exp:   int = 0
    iss:   str = ""


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ---------------------------------------------------------------------------
# JWKS cache
# ---------------------------------------------------------------------------

class _JWKSCache:
    """
    In-memory JWKS cache keyed by issuer.

    Behaviour:
      • Fetches <issuer>/.well-known/jwks.json once and caches it for TTL.
      • Unknown kid: force-refreshes once (handles rotation).
      • Still unknown, or the endpoint is unreachable: 401.
    """

    _TTL: int = 3600   # 1 hour

    def __init__(self) -> None:
        self._store: dict[str, tuple[dict, float]] = {}   # issuer → (jwks, fetched_at)

    async def get_signing_key(self, token: str, issuer: str) -> object:
        try:
            header = jwt.get_unverified_header(token)
        except JWTError as exc:
            raise _unauthorized("Malformed token header") from exc

        kid = header.get("kid")

        for attempt in range(2):
            if attempt == 1:
                self._store.pop(issuer, None)   # force refresh on second attempt

            jwks = await self._fetch(issuer)

            for key_data in jwks.get("keys", []):
                if key_data.get("kid") == kid:
                    return jwk.construct(key_data).public_key()

        raise _unauthorized(f"No signing key found for kid={kid!r}.")

    async def _fetch(self, issuer: str) -> dict:
        """Fetch JWKS from the well-known endpoint with TTL-based caching."""
        now    = time.monotonic()
        cached = self._store.get(issuer)

        if cached and (now - cached[1]) < self._TTL:
            return cached[0]

        uri = f"{issuer.rstrip('/')}/.well-known/jwks.json"
        try:
            async with httpx.AsyncClient(timeout=10.0) as http:
                resp = await http.get(uri)
                resp.raise_for_status()
                jwks = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.error("JWKS fetch failed | issuer=%s status=%d", issuer, exc.response.status_code)
            raise _unauthorized("Unable to retrieve token signing keys.") from exc
        except httpx.RequestError as exc:
            logger.error("JWKS fetch network error | issuer=%s error=%s", issuer, exc)
            raise _unauthorized("Unable to retrieve token signing keys (network error).") from exc

        self._store[issuer] = (jwks, now)
        logger.debug("JWKS refreshed | issuer=%s keys=%d", issuer, len(jwks.get("keys", [])))
        return jwks

    def clear(self) -> None:
        self._store.clear()

    def stats(self) -> dict:
        """Cache diagnostics for ops tooling."""
        now = time.monotonic()
        return {
            issuer: {
                "age_seconds": round(now - fetched_at),
                "key_count":   len(jwks.get("keys", [])),
            }
            for issuer, (jwks, fetched_at) in self._store.items()
        }


# ---------------------------------------------------------------------------
# Authenticators
# ---------------------------------------------------------------------------

class JWTDecoder:
    """
    Verifies RS256 bearer tokens against the issuer's JWKS.

    Instantiate with explicit issuer/audience/cache for test isolation:
        decoder = JWTDecoder(issuer="https://test.example.com/", audience="api")
    """

    def __init__(
        self,
        issuer:   str,
        audience: str,
        cache:    _JWKSCache | None = None,
    ) -> None:
        self._issuer   = issuer
        self._audience = audience
        self._cache    = cache or _JWKSCache()

    async def authenticate(self, token: str | None, request_id: str = "-") -> TokenPayload:
        if not token:
            raise _unauthorized("Authentication required. Provide a valid Bearer token.")

        signing_key = await self._cache.get_signing_key(token, issuer=self._issuer)

        try:
            claims = jwt.decode(
                token,
                signing_key,
                algorithms=["RS256"],
                audience=self._audience,
                issuer=self._issuer,
                options={"verify_exp": True},
            )
        except ExpiredSignatureError:
            logger.info("Expired token | request_id=%s", request_id)
            raise _unauthorized("Token has expired. Please re-authenticate.")
        except JWTError as exc:
            logger.warning("JWT decode error | request_id=%s error=%s", request_id, exc)
            raise _unauthorized(f"Invalid token: {exc}")

        sub = claims.get("sub")
        if not sub:
            logger.warning("Token missing sub claim | request_id=%s", request_id)
            raise _unauthorized("Token is missing the required sub claim.")

        return TokenPayload(
            sub=str(sub),
            email=claims.get("email", ""),
            exp=claims["exp"],
            iss=claims["iss"],
        )


class DevAuthenticator:
    """Local development only: resolves every request to one configured user."""

    def __init__(self, user_id: str) -> None:
        self._payload = TokenPayload(sub=user_id, iss="dev")

    async def authenticate(self, token: str | None, request_id: str = "-") -> TokenPayload:
        return self._payload


def build_authenticator(settings: Settings) -> JWTDecoder | DevAuthenticator:
    if settings.auth_mode == "disabled":
        logger.warning("Authentication DISABLED | dev_user_id=%s", settings.dev_user_id)
        return DevAuthenticator(settings.dev_user_id)
    return JWTDecoder(issuer=settings.auth_issuer, audience=settings.auth_audience)


# ---------------------------------------------------------------------------
# FastAPI dependency
# ---------------------------------------------------------------------------

async def get_current_user(
    request:     Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
) -> TokenPayload:
    """
    Resolve the verified principal for this request.

        @router.get("/documents")
        async def list_docs(user: CurrentUser): ...
    """
    authenticator = request.app.state.authenticator
    token = credentials.credentials if credentials else None
    return await authenticator.authenticate(token, request.headers.get("X-Request-ID", "-"))
