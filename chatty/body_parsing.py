"""Size-capped JSON and URL-encoded body parsing.

Bodies are read completely before the handler runs, so oversized requests
are refused with 413 without reaching any route. The parsed value is stored
on ``request.state.body`` and the raw bytes are replayed to the handler.
"""

import json
from typing import Any
from urllib.parse import parse_qsl

from starlette.datastructures import Headers
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .domain.exceptions import ApplicationError, BadRequestError, PayloadTooLargeError
from .presentation.error_handlers import error_response_for

JSON_TYPES = ("application/json",)
FORM_TYPES = ("application/x-www-form-urlencoded",)


def parse_form(body: bytes) -> dict[str, Any]:
    """Parse a URL-encoded body; repeated keys become lists.

    Keys are kept flat: ``a[b]=c`` yields the literal key ``"a[b]"``.
    """
    parsed: dict[str, Any] = {}
    for name, value in parse_qsl(body.decode("utf-8"), keep_blank_values=True):
        if name not in parsed:
            parsed[name] = value
        elif isinstance(parsed[name], list):
            parsed[name].append(value)
        else:
            parsed[name] = [parsed[name], value]
    return parsed


class BodyParserMiddleware:
    def __init__(self, app: ASGIApp, limit: int) -> None:
        self.app = app
        self.limit = limit

    def _body_kind(self, headers: Headers) -> str | None:
        content_type = headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type in JSON_TYPES or content_type.endswith("+json"):
            return "json"
        if content_type in FORM_TYPES:
            return "form"
        return None

    async def _reject(
        self, error: ApplicationError, scope: Scope, receive: Receive, send: Send
    ) -> None:
        response = error_response_for(error).to_response()
        await response(scope, receive, send)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = Headers(scope=scope)
        kind = self._body_kind(headers)
        if kind is None:
            await self.app(scope, receive, send)
            return

        declared = headers.get("content-length", "")
        if declared.isdigit() and int(declared) >= self.limit:
            await self._reject(PayloadTooLargeError(), scope, receive, send)
            return

        body = bytearray()
        more_body = True
        while more_body:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
            body.extend(message.get("body", b""))
            if len(body) >= self.limit:
                await self._reject(PayloadTooLargeError(), scope, receive, send)
                return
            more_body = message.get("more_body", False)

        try:
            if not body:
                parsed: Any = {}
            elif kind == "json":
                parsed = json.loads(body)
            else:
                parsed = parse_form(bytes(body))
        except ValueError:
            await self._reject(
                BadRequestError(f"Malformed {kind} body"), scope, receive, send
            )
            return

        scope.setdefault("state", {})["body"] = parsed

        replayed = False

        async def replay() -> Message:
            nonlocal replayed
            if not replayed:
                replayed = True
                return {"type": "http.request", "body": bytes(body), "more_body": False}
            return await receive()

        await self.app(scope, replay, send)
