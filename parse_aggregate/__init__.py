"""Client-side aggregation pipelines for Parse Server classes."""
from .errors import (
    ConfigurationError,
    ConversionError,
    DirectExecutionUnavailable,
    QueryCompilationError,
    RemoteExecutionError,
)
from .models import (
    Accumulator,
    Constraint,
    ConstraintSet,
    DateUnit,
    GroupedResult,
    GroupEntry,
    Operator,
    Order,
    PointerRef,
    WireKey,
)
from .services import (
    DirectExecutor,
    ExecutionBridge,
    ExecutionMode,
    Query,
    QueryCompiler,
    RemoteExecutor,
)

__version__ = "0.1.0"

__all__ = [
    "ConfigurationError",
    "ConversionError",
    "DirectExecutionUnavailable",
    "QueryCompilationError",
    "RemoteExecutionError",
    "Accumulator",
    "Constraint",
    "ConstraintSet",
    "DateUnit",
    "GroupedResult",
    "GroupEntry",
    "Operator",
    "Order",
    "PointerRef",
    "WireKey",
    "DirectExecutor",
    "ExecutionBridge",
    "ExecutionMode",
    "Query",
    "QueryCompiler",
    "RemoteExecutor",
]
