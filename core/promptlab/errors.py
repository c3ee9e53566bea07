"""Exception hierarchy for promptlab.

Node-level failures raised inside the workflow executor are caught there and
turned into ``error`` steps of the run log; they never escape ``run()``.
"""


class PromptLabError(Exception):
    """Base class for all promptlab errors."""

    pass


class ConfigError(PromptLabError):
    """Raised when configuration is present but unusable."""

    pass


class GraphLoadError(PromptLabError):
    """Raised when a stored workflow graph cannot be parsed."""

    pass


class WorkflowError(PromptLabError):
    """Base class for failures that terminate a node during a run.

    ``kind`` ends up in the run log step as ``error_kind``.
    """

    kind = "internal"


class UnresolvedReferenceError(WorkflowError):
    """A node references a prompt version or model config that does not exist."""

    kind = "unresolved_reference"


class GenerationError(WorkflowError):
    """The external generation call failed."""

    kind = "generation_failed"


class RunCancelledError(WorkflowError):
    """The run was cancelled while a node was executing."""

    kind = "cancelled"

    def __init__(self, message: str = "cancelled"):
        super().__init__(message)


class ContextOverwriteError(WorkflowError):
    """A run tried to write the same context key twice."""

    pass
