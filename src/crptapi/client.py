import logging
import os
import threading
import time
import weakref
from collections.abc import Iterator
from contextlib import contextmanager

import requests

from .cancellation import CancellationToken
from .documents import Document
from .errors import (
    AdmissionInterruptedError,
    InvalidConfigurationError,
    SubmissionFailedError,
    TransientTransportError,
)
from .limiter import RefillWindowConfig, RefillWindowRateLimiter, TimeUnit

logger = logging.getLogger(__name__)


class CrptClient:
    """
    A thread-safe client for the CRPT ("Chestny ZNAK") document API.

    Every logical submission takes one permit from the client's rate limiter;
    retries of the same submission do not consume extra permits.

    Args:
        rate_limit_config: Requests allowed per window
        url: Document creation endpoint, defaults to $CRPT_API_URL or DEFAULT_URL
        max_attempts: Network attempts per submission
        backoff_seconds: Fixed pause between attempts
        connect_timeout: Request timeout in seconds
    """

    DEFAULT_URL: str = "https://ismp.crpt.ru/api/v3/lk/documents/create"
    URL_ENV_VAR: str = "CRPT_API_URL"

    @classmethod
    def from_time_unit(
        cls,
        time_unit: TimeUnit,
        request_limit: int,
        **kwargs,
    ) -> "CrptClient":
        """
        Create a CrptClient allowing ``request_limit`` requests per ``time_unit``.
        Args:
            time_unit: Length of the rate-limit window
            request_limit: Positive number of requests allowed per window
        Returns:
            A CrptClient instance
        Raises:
            InvalidConfigurationError: If ``request_limit`` is not positive
        """
        config = RefillWindowConfig.from_time_unit(time_unit, request_limit)
        return cls(rate_limit_config=config, **kwargs)

    def __init__(
        self,
        rate_limit_config: RefillWindowConfig | None = None,
        url: str | None = None,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        connect_timeout: int = 30,
    ) -> None:
        if max_attempts < 1:
            raise InvalidConfigurationError(
                f"max_attempts must be at least 1, got {max_attempts}"
            )
        if backoff_seconds < 0:
            raise InvalidConfigurationError(
                f"backoff_seconds must not be negative, got {backoff_seconds}"
            )
        rate_limit_config = rate_limit_config or RefillWindowConfig()
        self._rate_limiter = RefillWindowRateLimiter(config=rate_limit_config)
        self._url = url or os.getenv(self.URL_ENV_VAR) or self.DEFAULT_URL
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds
        self._connect_timeout = connect_timeout
        self._local = threading.local()
        self._in_context = False
        self._sessions = weakref.WeakSet()

        # Ensure sessions are closed when the client is garbage collected
        def _finalize_sessions(sessions: weakref.WeakSet):
            for s in list(sessions):
                try:
                    s.close()
                except Exception:
                    logger.debug("Failed to close session during finalization")

        self._finalizer = weakref.finalize(self, _finalize_sessions, self._sessions)

    @contextmanager
    def _get_session(self) -> Iterator[requests.Session]:
        if self._in_context:
            session = getattr(self._local, "session", None)
            if session is None:
                session = requests.Session()
                self._sessions.add(session)
                weakref.finalize(session, session.close)
                self._local.session = session
            yield session
        else:
            session = requests.Session()
            try:
                yield session
            finally:
                session.close()

    def __enter__(self) -> "CrptClient":
        self._in_context = True
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        for session in list(self._sessions):
            session.close()
        self._sessions.clear()
        self._local = threading.local()
        self._in_context = False

    @property
    def url(self) -> str:
        """Document creation endpoint URL"""
        return self._url

    @property
    def rate_limiter(self) -> RefillWindowRateLimiter:
        return self._rate_limiter

    def _post(self, body: bytes, signature: str) -> None:
        headers = {
            "Content-Type": "application/json",
            "Signature": signature,
        }
        with self._get_session() as session:
            response = session.post(
                self.url,
                headers=headers,
                data=body,
                timeout=self._connect_timeout,
            )
        if response.status_code != 200:
            raise TransientTransportError(response.status_code, response.text)

    def _backoff(self, cancel_token: CancellationToken | None) -> None:
        if cancel_token is None:
            time.sleep(self._backoff_seconds)
        elif cancel_token.wait(self._backoff_seconds):
            raise AdmissionInterruptedError("Interrupted while waiting to retry")

    def create_document(
        self,
        document: Document,
        signature: str,
        cancel_token: CancellationToken | None = None,
    ) -> None:
        """
        Submit a document for introduction into circulation.

        Blocks until the rate limiter admits the call, then posts the document,
        retrying failed attempts after a fixed pause.

        Args:
            document: The document to submit
            signature: Signature sent in the ``Signature`` header
            cancel_token: Optional token to abandon the submission while waiting

        Raises:
            AdmissionInterruptedError: If cancelled while waiting for a permit
                or between attempts
            TypeError: If ``signature`` is not a string
            SubmissionFailedError: If every attempt failed
        """
        if not isinstance(signature, str):
            raise TypeError(
                f"signature must be a str, got {type(signature).__name__}"
            )
        self._rate_limiter.acquire(cancel_token)

        body = document.to_json().encode("utf-8")
        causes: list[Exception] = []
        for attempt in range(1, self._max_attempts + 1):
            try:
                self._post(body, signature)
                return
            except (TransientTransportError, requests.exceptions.RequestException) as e:
                logger.error(
                    f"CrptClient attempt {attempt}/{self._max_attempts} failed: {e}"
                )
                causes.append(e)

            if attempt < self._max_attempts:
                self._backoff(cancel_token)

        logger.warning(f"CrptClient giving up after {self._max_attempts} attempts")
        raise SubmissionFailedError(self._max_attempts, causes)

    submit = create_document
