"""Report error taxonomy and helpers for Problem Details responses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import uuid4

from pydantic import BaseModel, Field

PROBLEM_TYPE_ROOT = "https://problems.datamart.dev"


def generate_correlation_id() -> str:
    """
    Return a new correlation identifier for tracing errors.

    Returns
    -------
    str
        UUID4 correlation identifier.
    """
    return str(uuid4())


class ProblemDetail(BaseModel):
    """RFC 9457 Problem Details payload for report error responses."""

    type: str = Field(default="about:blank")
    title: str
    detail: str | None = None
    status: int | None = None
    instance: str = Field(default_factory=generate_correlation_id)
    data: dict[str, object] | None = None


@dataclass
class ReportsError(Exception):
    """Base report error carrying a ProblemDetail payload."""

    detail: ProblemDetail

    def __str__(self) -> str:
        """
        Return a concise string for logging/diagnostics.

        Returns
        -------
        str
            Concise representation of the problem.
        """
        return f"{self.detail.title}: {self.detail.detail or ''}".strip()

    @property
    def status(self) -> int:
        """HTTP status associated with the problem (500 when unset)."""
        return self.detail.status or 500


def _problem(slug: str, title: str, message: str, status: int) -> ReportsError:
    return ReportsError(
        detail=ProblemDetail(
            type=f"{PROBLEM_TYPE_ROOT}/{slug}",
            title=title,
            detail=message,
            status=status,
        )
    )


def invalid_argument(message: str) -> ReportsError:
    """
    Construct an invalid-argument problem.

    Returns
    -------
    ReportsError
        Error wrapping a ProblemDetail payload.
    """
    return _problem("invalid-argument", "Invalid argument", message, 400)


def not_found(message: str) -> ReportsError:
    """
    Construct a not-found problem.

    Returns
    -------
    ReportsError
        Error wrapping a ProblemDetail payload.
    """
    return _problem("not-found", "Not found", message, 404)


def backend_failure(message: str) -> ReportsError:
    """
    Construct a backend-failure problem.

    Returns
    -------
    ReportsError
        Error wrapping a ProblemDetail payload.
    """
    return _problem("backend-failure", "Backend failure", message, 500)


def log_problem(logger: logging.Logger | logging.LoggerAdapter, detail: ProblemDetail) -> None:
    """Emit a Problem Detail as a structured error log."""
    logger.error(detail.model_dump_json(exclude_none=True))
