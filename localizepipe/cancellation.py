#!/usr/bin/env python3
"""Cooperative cancellation for long-running scan, translate and write loops."""

import threading
from typing import Optional


class OperationCancelled(Exception):
    """Raised at a checkpoint once cancellation has been requested."""


class CancellationToken:
    """
    A thread-safe cancellation flag passed explicitly through long-running calls.

    Loops call :meth:`check` at every checkpoint (before each group, row or
    file operation). The owner calls :meth:`cancel` from any thread.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


def check_cancelled(token: Optional[CancellationToken]) -> None:
    """Checkpoint helper for functions whose token is optional."""
    if token is not None:
        token.check()
