"""Exceptions raised by the CRPT document client.

Configuration and admission errors surface directly to the caller. Per-attempt
transport failures are collected by the retry loop and only surface, wrapped in
:class:`SubmissionFailedError`, once every attempt has been used.
"""

from collections.abc import Sequence

__all__ = [
    "CrptApiError",
    "InvalidConfigurationError",
    "AdmissionInterruptedError",
    "TransientTransportError",
    "SubmissionFailedError",
]


class CrptApiError(RuntimeError):
    """Base exception for the CRPT document client."""


class InvalidConfigurationError(CrptApiError, ValueError):
    """Raised when a limiter or client is constructed with invalid settings."""


class AdmissionInterruptedError(CrptApiError):
    """Raised when a caller is cancelled while waiting for an admission slot."""


class TransientTransportError(CrptApiError):
    """A single submission attempt answered with a non-200 status."""

    def __init__(self, status_code: int, body: str = "") -> None:
        super().__init__(f"HTTP error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


class SubmissionFailedError(CrptApiError):
    """Every submission attempt failed.

    Args:
        attempts: Number of attempts that were made
        causes: The error recorded for each attempt, in order
    """

    def __init__(self, attempts: int, causes: Sequence[Exception]) -> None:
        self.attempts = attempts
        self.causes = list(causes)
        super().__init__(f"Failed after {attempts} attempts. Errors: {self.causes}")
