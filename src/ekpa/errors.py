"""Exception hierarchy shared by the agent core, providers and stores."""

from __future__ import annotations


class EkpaError(Exception):
    """Base class for all Ekpa errors."""


class UpstreamError(EkpaError):
    """The model backend returned no usable response. Fatal for the current turn."""


class TooManyIterationsError(EkpaError):
    """The model kept requesting tools past the iteration budget."""

    def __init__(self, iterations: int, edited_files: list[str] | None = None) -> None:
        super().__init__(f"Too many function call iterations ({iterations})")
        self.iterations = iterations
        self.edited_files = list(edited_files or [])


class TurnTimeoutError(EkpaError):
    """The turn deadline expired while waiting on the model or a tool."""

    def __init__(self, timeout: float, edited_files: list[str] | None = None) -> None:
        super().__init__(f"Turn exceeded its {timeout:g}s deadline")
        self.timeout = timeout
        self.edited_files = list(edited_files or [])


class ToolArgumentError(EkpaError):
    """Tool arguments did not match the declared shape."""


class MemoryValidationError(EkpaError, ValueError):
    """A memory item failed validation at the store boundary."""


class ConversationValidationError(EkpaError, ValueError):
    """A customer conversation is missing fields required for completion."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__(f"Validation failed: {', '.join(errors)}")
        self.errors = errors


class ConversationStateError(EkpaError):
    """A customer conversation is not in a state that allows the operation."""
