"""Core helpers shared by storage backends, the sync engine and the server."""

from .async_utils import Debouncer, run_sync

__all__ = ["Debouncer", "run_sync"]
