from .engine import SnippetEvaluator
from .types import (
    ContextUnavailableError,
    ExecutionRequest,
    ExecutionResult,
    OutputClassification,
    PendingRequest,
)

__all__ = [
    "ContextUnavailableError",
    "ExecutionRequest",
    "ExecutionResult",
    "OutputClassification",
    "PendingRequest",
    "SnippetEvaluator",
]
