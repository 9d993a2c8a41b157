from .policy import RunnerPolicy
from .runner import evaluate, run_code, teardown
from .inputs import merge_inputs
from .execution.classifier import classify_output
from .execution.direct import DirectEvaluator
from .execution.dispatcher import IsolatedEngine
from .execution.types import ExecutionResult

__all__ = [
    "DirectEvaluator",
    "ExecutionResult",
    "IsolatedEngine",
    "RunnerPolicy",
    "classify_output",
    "evaluate",
    "merge_inputs",
    "run_code",
    "teardown",
]
