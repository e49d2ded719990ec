"""Nox configuration for chatty quality assurance tasks."""

import nox  # pyright: ignore[reportMissingImports] # noqa: I001

nox.options.default_venv_backend = "uv"

PYTHON_VERSIONS = ["3.12", "3.13"]

SOURCE_PATHS = ["chatty/", "tests/"]


@nox.session(python=PYTHON_VERSIONS)
def lint(session: nox.Session) -> None:
    """Run linting with ruff check."""
    session.install("-e", ".[dev]")
    session.run("ruff", "check", *SOURCE_PATHS)


@nox.session(python=PYTHON_VERSIONS)
def mypy(session: nox.Session) -> None:
    """Run type checking with mypy."""
    session.install("-e", ".[dev]")
    session.run("mypy", "chatty/")


@nox.session(python=PYTHON_VERSIONS)
def format_check(session: nox.Session) -> None:
    """Check code formatting with ruff format."""
    session.install("-e", ".[dev]")
    session.run("ruff", "format", "--check", "--diff", *SOURCE_PATHS)


@nox.session(python=PYTHON_VERSIONS)
def format(session: nox.Session) -> None:
    """Format code with ruff format."""
    session.install("-e", ".[dev]")
    session.run("ruff", "format", *SOURCE_PATHS)


@nox.session(python=PYTHON_VERSIONS)
def tests(session: nox.Session) -> None:
    """Run tests with pytest (in-memory SQLite and fakeredis)."""
    session.install("-e", ".[dev]")
    session.run("pytest", "--verbose", *session.posargs)

