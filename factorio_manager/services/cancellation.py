import threading
from typing import Optional


class OperationCancelled(Exception):
    """Raised when the caller's cancellation event is set mid-operation."""


def check_cancelled(cancel: Optional[threading.Event], what: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"{what} cancelled")
