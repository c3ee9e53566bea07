"""Run-scoped variable namespace shared by the nodes of one workflow run."""

from __future__ import annotations

from collections.abc import Mapping

from promptlab.errors import ContextOverwriteError

RAW_OUTPUT_PREFIX = "_raw_output_"


class ExecutionContext:
    """
    Maps variable names to string values for a single run.

    Named variables (initial inputs and declared node outputs) and raw node
    outputs live in separate namespaces, so a caller input can never shadow
    or block a node's raw output. Named keys are write-once; nothing is
    deleted.
    """

    def __init__(self, initial: Mapping[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})
        self._raw: dict[str, str] = {}

    def get(self, name: str) -> str | None:
        return self._values.get(name)

    def has(self, name: str) -> bool:
        return name in self._values

    def set(self, name: str, value: str) -> None:
        if name in self._values:
            raise ContextOverwriteError(f"Context variable '{name}' is already set")
        self._values[name] = value

    def get_raw(self, node_id: str) -> str | None:
        return self._raw.get(node_id)

    def set_raw(self, node_id: str, value: str) -> None:
        # each node executes at most once per run
        if node_id in self._raw:
            raise ContextOverwriteError(f"Raw output of node '{node_id}' is already set")
        self._raw[node_id] = value

    def snapshot(self) -> dict[str, str]:
        """Named variables plus raw outputs under ``_raw_output_<node_id>``."""
        return {
            **self._values,
            **{RAW_OUTPUT_PREFIX + node_id: value for node_id, value in self._raw.items()},
        }

    def __len__(self) -> int:
        return len(self._values) + len(self._raw)
