"""Default route mount point."""

from fastapi import FastAPI

from .presentation.health import health_router


def application_routes(app: FastAPI) -> None:
    """Register the built-in routes on ``app``.

    Deployments with domain handlers pass their own mount function to
    ``create_app``; it should include this one.
    """
    app.include_router(health_router)
