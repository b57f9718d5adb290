"""
Signed cookie sessions.

The session only ever carries the Patreon user ID of the logged-in visitor.
Payloads are JSON, signed with HMAC-SHA256 and base64 encoded so they can be
handed to the browser without a server-side session table.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
import logging
import time
from hashlib import sha256
from typing import Any, Dict, Optional

from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

logger = logging.getLogger(__name__)

_SIGNATURE_LENGTH = 32


class InvalidSessionError(Exception):
    """Raised when a session cookie was tampered with or has expired."""


class SessionCookieCodec:
    """Encode and decode signed session payloads."""

    def __init__(self, secret_key: str, *, max_age_seconds: int) -> None:
        self._secret_key = secret_key.encode("utf-8")
        self._max_age = max_age_seconds

    def encode(self, payload: Dict[str, Any], *, issued_at: Optional[int] = None) -> str:
        body = dict(payload, iat=int(issued_at if issued_at is not None else time.time()))
        serialized = json.dumps(body, separators=(",", ":"), sort_keys=True).encode("utf-8")
        signature = hmac.new(self._secret_key, serialized, sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized).decode("ascii")

    def decode(self, token: str) -> Dict[str, Any]:
        try:
            decoded = base64.urlsafe_b64decode(token.encode("ascii"))
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise InvalidSessionError("Malformed session cookie.") from exc

        signature, serialized = decoded[:_SIGNATURE_LENGTH], decoded[_SIGNATURE_LENGTH:]
        expected = hmac.new(self._secret_key, serialized, sha256).digest()
        if not hmac.compare_digest(signature, expected):
            raise InvalidSessionError("Invalid session signature.")

        try:
            payload = json.loads(serialized)
        except ValueError as exc:
            raise InvalidSessionError("Malformed session payload.") from exc
        if not isinstance(payload, dict):
            raise InvalidSessionError("Malformed session payload.")

        issued_at = payload.pop("iat", 0)
        if not isinstance(issued_at, int) or time.time() - issued_at > self._max_age:
            raise InvalidSessionError("Session has expired.")
        return payload


class PatronSession:
    """Mutable view of the session for the duration of one request."""

    def __init__(self, patreon_id: Optional[str] = None) -> None:
        self._patreon_id = patreon_id
        self.modified = False

    @property
    def patreon_id(self) -> Optional[str]:
        return self._patreon_id

    def login(self, patreon_id: str) -> None:
        self._patreon_id = patreon_id
        self.modified = True

    def clear(self) -> None:
        if self._patreon_id is not None:
            self.modified = True
        self._patreon_id = None


class SessionCookieMiddleware:
    """ASGI middleware exposing ``request.state.session`` backed by a signed cookie."""

    def __init__(
        self,
        app: ASGIApp,
        *,
        codec: SessionCookieCodec,
        cookie_name: str,
        max_age_seconds: int,
        https_only: bool = False,
    ) -> None:
        self.app = app
        self._codec = codec
        self._cookie_name = cookie_name
        self._max_age = max_age_seconds
        self._https_only = https_only

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        session = PatronSession()
        raw_cookie = connection.cookies.get(self._cookie_name)
        if raw_cookie:
            try:
                payload = self._codec.decode(raw_cookie)
            except InvalidSessionError as exc:
                logger.info("Discarding session cookie: %s", exc)
                session.modified = True
            else:
                patreon_id = payload.get("patreon_id")
                if isinstance(patreon_id, str) and patreon_id:
                    session = PatronSession(patreon_id)

        scope.setdefault("state", {})["session"] = session

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start" and session.modified:
                headers = MutableHeaders(scope=message)
                headers.append("Set-Cookie", self._build_cookie(session.patreon_id))
            await send(message)

        await self.app(scope, receive, send_wrapper)

    def _build_cookie(self, patreon_id: Optional[str]) -> str:
        flags = "Path=/; HttpOnly; SameSite=Lax"
        if self._https_only:
            flags += "; Secure"
        if patreon_id is None:
            return f"{self._cookie_name}=; Max-Age=0; {flags}"
        value = self._codec.encode({"patreon_id": patreon_id})
        return f"{self._cookie_name}={value}; Max-Age={self._max_age}; {flags}"


__all__ = [
    "InvalidSessionError",
    "PatronSession",
    "SessionCookieCodec",
    "SessionCookieMiddleware",
]
