"""Cooperative cancellation for long-running operations."""

import threading

from oaskit.errors import OperationCancelled


class CancelToken:
    """
    Thread-safe flag checked by walkers and resolvers between steps.

    Example:
        token = CancelToken()
        threading.Timer(5.0, token.cancel).start()
        bundle(doc, BundleOptions(ResolveOptions(root_location="api.yaml", cancel=token)))
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelled if cancel() has been called."""
        if self._event.is_set():
            raise OperationCancelled("operation cancelled")


def check_cancelled(token: CancelToken | None) -> None:
    """Raise OperationCancelled if ``token`` is set; ``None`` never cancels."""
    if token is not None:
        token.raise_if_cancelled()
