"""Caller-side persistence for run logs."""

from promptlab.storage.run_log_store import RunLogStore

__all__ = ["RunLogStore"]
