import threading


class CancellationToken:
    """Thread-safe flag used to abandon a blocked submission.

    Threads cannot be interrupted from the outside, so callers that may need to
    give up on a pending ``acquire()`` pass a token and cancel it from another
    thread.

    Examples:
        >>> token = CancellationToken()
        >>> # worker thread
        >>> client.create_document(doc, signature, cancel_token=token)
        >>> # elsewhere
        >>> token.cancel()
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        self._cancelled.set()

    def is_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def reset(self) -> None:
        """Clear the flag so the token can be reused."""
        self._cancelled.clear()

    def wait(self, timeout: float | None = None) -> bool:
        """Block for up to ``timeout`` seconds. Returns True if cancelled."""
        return self._cancelled.wait(timeout)
