from .constraints import Constraint, ConstraintSet, Operator, Order
from .grouping import Accumulator, DateGroupDirective, DateUnit, GroupDirective
from .pointer import PointerRef, WireKey
from .results import GroupedResult, GroupEntry
from .stages import (
    AddFields,
    Count,
    Group,
    Limit,
    Match,
    PipelineStage,
    Project,
    RawStage,
    Skip,
    Sort,
    Unwind,
    stages_to_pipeline,
)

__all__ = [
    "Constraint",
    "ConstraintSet",
    "Operator",
    "Order",
    "Accumulator",
    "DateGroupDirective",
    "DateUnit",
    "GroupDirective",
    "PointerRef",
    "WireKey",
    "GroupedResult",
    "GroupEntry",
    "AddFields",
    "Count",
    "Group",
    "Limit",
    "Match",
    "PipelineStage",
    "Project",
    "RawStage",
    "Skip",
    "Sort",
    "Unwind",
    "stages_to_pipeline",
]
