"""
Domain exceptions mapped to HTTP responses in main.py.
"""

from __future__ import annotations

from typing import Any


class ArchLensError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Any = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


class NotFoundError(ArchLensError):
    status_code = 404


class ValidationError(ArchLensError):
    status_code = 400


class AnalysisError(ArchLensError):
    """LLM output could not be turned into a usable analysis."""

    status_code = 500


class ServiceUnavailableError(ArchLensError):
    status_code = 503
