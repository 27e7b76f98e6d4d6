"""LLM-driven tool selection, fan-out execution and answer synthesis."""

from .aggregator import ResponseAggregator
from .decision import OrchestrationDecisionMaker
from .errors import (
    DecisionParseFailure,
    OrchestrationError,
    OrchestrationExhausted,
    ToolCatalogUnavailable,
)
from .loop import MAX_RETRIES, OrchestrationLoop
from .models import (
    AggregationResult,
    AttemptRecord,
    LoopState,
    OrchestrationDecision,
    OrchestrationOutcome,
    ToolCallDecision,
)

__all__ = [
    "AggregationResult",
    "AttemptRecord",
    "DecisionParseFailure",
    "LoopState",
    "MAX_RETRIES",
    "OrchestrationDecision",
    "OrchestrationDecisionMaker",
    "OrchestrationError",
    "OrchestrationExhausted",
    "OrchestrationLoop",
    "OrchestrationOutcome",
    "ResponseAggregator",
    "ToolCallDecision",
    "ToolCatalogUnavailable",
]
