"""Agent CLI completions, reply extraction, and the tool protocol."""

from .completion import CompletionRequest, CompletionResult, CompletionService
from .errors import CompletionError, DataError, ExternalError, TooLongError
from .providers import ProviderKind, provider_from_string

__all__ = [
    "CompletionRequest",
    "CompletionResult",
    "CompletionService",
    "CompletionError",
    "DataError",
    "ExternalError",
    "TooLongError",
    "ProviderKind",
    "provider_from_string",
]
