"""HTTP parameter pollution guard.

Repeated query parameters are collapsed to their last value before any
handler sees the query string. The original lists stay available on
``request.state.query_polluted``.
"""

from collections.abc import Iterable
from urllib.parse import parse_qsl, urlencode

from starlette.types import ASGIApp, Receive, Scope, Send


def collapse_query(
    query_string: str, whitelist: Iterable[str] = ()
) -> tuple[str, dict[str, list[str]]]:
    """Return the normalized query string and the parameters that were repeated."""
    allowed = set(whitelist)
    grouped: dict[str, list[str]] = {}
    for name, value in parse_qsl(query_string, keep_blank_values=True):
        grouped.setdefault(name, []).append(value)

    polluted = {
        name: values
        for name, values in grouped.items()
        if len(values) > 1 and name not in allowed
    }
    if not polluted:
        return query_string, {}

    kept: list[tuple[str, str]] = []
    for name, values in grouped.items():
        if name in polluted:
            kept.append((name, values[-1]))
        else:
            kept.extend((name, value) for value in values)
    return urlencode(kept), polluted


class ParameterPollutionMiddleware:
    def __init__(self, app: ASGIApp, whitelist: Iterable[str] = ()) -> None:
        self.app = app
        self.whitelist = tuple(whitelist)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http" and scope.get("query_string"):
            query, polluted = collapse_query(
                scope["query_string"].decode("latin-1"), self.whitelist
            )
            if polluted:
                scope["query_string"] = query.encode("latin-1")
                scope.setdefault("state", {})["query_polluted"] = polluted
        await self.app(scope, receive, send)
