"""Signed cookie sessions with secret rotation.

The whole session lives client-side in one cookie, base64 JSON signed with
``itsdangerous``. The first configured key signs; every configured key is
accepted when verifying, so rotating secrets keeps existing sessions alive
until they expire.
"""

import json
from base64 import b64decode, b64encode
from collections.abc import Sequence
from typing import Any

from itsdangerous import BadSignature, TimestampSigner
from starlette.datastructures import MutableHeaders
from starlette.requests import HTTPConnection
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .constants import SESSION_COOKIE_NAME, SESSION_MAX_AGE_SECONDS


class SessionCookieMiddleware:
    def __init__(
        self,
        app: ASGIApp,
        keys: Sequence[str],
        cookie_name: str = SESSION_COOKIE_NAME,
        max_age: int = SESSION_MAX_AGE_SECONDS,
        path: str = "/",
        same_site: str = "lax",
        secure: bool = True,
    ) -> None:
        if not keys:
            raise ValueError("At least one session signing key is required")
        self.app = app
        # itsdangerous signs with the last key, ours are newest first
        self.signer = TimestampSigner(list(reversed(keys)))
        self.cookie_name = cookie_name
        self.max_age = max_age
        self.path = path
        self.security_flags = f"httponly; samesite={same_site}"
        if secure:
            self.security_flags += "; secure"

    def encode(self, session: dict[str, Any]) -> str:
        data = b64encode(json.dumps(session).encode("utf-8"))
        return self.signer.sign(data).decode("utf-8")

    def decode(self, value: str) -> dict[str, Any] | None:
        """Return the session stored in a cookie value, or None if invalid."""
        try:
            data = self.signer.unsign(value.encode("utf-8"), max_age=self.max_age)
            session = json.loads(b64decode(data))
        except (BadSignature, ValueError):
            return None
        return session if isinstance(session, dict) else None

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] not in ("http", "websocket"):
            await self.app(scope, receive, send)
            return

        connection = HTTPConnection(scope)
        session = None
        if self.cookie_name in connection.cookies:
            session = self.decode(connection.cookies[self.cookie_name])
        had_session = bool(session)
        scope["session"] = session or {}

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                if scope["session"]:
                    headers = MutableHeaders(scope=message)
                    headers.append(
                        "Set-Cookie",
                        f"{self.cookie_name}={self.encode(scope['session'])}; "
                        f"path={self.path}; Max-Age={self.max_age}; "
                        f"{self.security_flags}",
                    )
                elif had_session:
                    # Session was cleared, expire the cookie
                    headers = MutableHeaders(scope=message)
                    headers.append(
                        "Set-Cookie",
                        f"{self.cookie_name}=null; path={self.path}; "
                        "expires=Thu, 01 Jan 1970 00:00:00 GMT; "
                        f"{self.security_flags}",
                    )
            await send(message)

        await self.app(scope, receive, send_wrapper)
