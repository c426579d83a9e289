from __future__ import annotations
import re
from collections.abc import Mapping, Sequence
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from ..errors import ConversionError, QueryCompilationError
from ..models.constraints import Constraint, ConstraintSet, Operator, Order
from ..models.stages import Count, Limit, Match, PipelineStage, Project, Skip, Sort, stages_to_pipeline
from ..utils.logger import setup_logger
from ..utils.regex_safety import MAX_PATTERN_LENGTH, validate_pattern
from .converter import FieldMapper, to_datetime, to_wire_date, to_wire_value

logger = setup_logger(__name__)

OrderLike = Union[Order, str]

# operator -> MongoDB comparison operator
COMPARISON_OPERATORS = {
    Operator.EQ: "$eq",
    Operator.NE: "$ne",
    Operator.GT: "$gt",
    Operator.GTE: "$gte",
    Operator.LT: "$lt",
    Operator.LTE: "$lte",
}

MEMBERSHIP_OPERATORS = {
    Operator.IN: "$in",
    Operator.NIN: "$nin",
    Operator.ALL: "$all",
}

DATE_OPERATORS = {
    Operator.BEFORE: "$lt",
    Operator.AFTER: "$gt",
    Operator.ON_OR_BEFORE: "$lte",
    Operator.ON_OR_AFTER: "$gte",
}


def _is_sequence(value: Any) -> bool:
    if isinstance(value, (str, bytes, Mapping)):
        return False
    return isinstance(value, (Sequence, set, frozenset))


class QueryCompiler:
    """
    Compiles constraint sets and query modifiers into an aggregation pipeline.

    Stateless: the same input always yields the same pipeline. Values are emitted in
    wire form; executors encode them for their target.
    """

    def compile_constraint(self, constraint: Constraint) -> Tuple[str, Dict[str, Any]]:
        """Compile one constraint to (wire field name, operator document)."""
        field = FieldMapper.to_wire(constraint.field)
        op = constraint.operator
        value = constraint.value

        try:
            if op in COMPARISON_OPERATORS:
                return field, {COMPARISON_OPERATORS[op]: to_wire_value(value)}

            if op is Operator.EXISTS:
                if not isinstance(value, bool):
                    raise ConversionError(f"expected a boolean, got {type(value).__name__}")
                return field, {"$exists": value}

            if op in MEMBERSHIP_OPERATORS:
                if not _is_sequence(value):
                    raise ConversionError(f"expected a list of values, got {type(value).__name__}")
                return field, {MEMBERSHIP_OPERATORS[op]: [to_wire_value(v) for v in value]}

            if op in DATE_OPERATORS:
                return field, {DATE_OPERATORS[op]: to_wire_date(to_datetime(value))}

            if op in (Operator.BETWEEN, Operator.BETWEEN_DATES):
                # sets have no order to tell low from high
                if not isinstance(value, (list, tuple)) or len(value) != 2:
                    raise ConversionError("expected a [low, high] pair")
                low, high = list(value)
                if op is Operator.BETWEEN_DATES:
                    return field, {"$gte": to_wire_date(to_datetime(low)), "$lte": to_wire_date(to_datetime(high))}
                return field, {"$gte": to_wire_value(low), "$lte": to_wire_value(high)}

            return field, self._compile_pattern(op, value)
        except ConversionError as exc:
            if exc.field is not None:
                raise
            raise ConversionError(str(exc), field=constraint.field, operator=op) from exc
        except ValueError as exc:
            raise ConversionError(str(exc), field=constraint.field, operator=op) from exc

    def _compile_pattern(self, op: Operator, value: Any) -> Dict[str, Any]:
        if op is Operator.LIKE and isinstance(value, re.Pattern):
            regex: Dict[str, Any] = {"$regex": validate_pattern(value)}
            if value.flags & re.IGNORECASE:
                regex["$options"] = "i"
            return regex

        if not isinstance(value, str):
            raise ConversionError(f"expected a string, got {type(value).__name__}")

        if op is Operator.LIKE:
            return {"$regex": validate_pattern(value)}

        if len(value) > MAX_PATTERN_LENGTH:
            raise ConversionError(f"pattern too long ({len(value)} chars, max {MAX_PATTERN_LENGTH})")
        escaped = re.escape(value)
        if op is Operator.CONTAINS:
            return {"$regex": f".*{escaped}.*", "$options": "i"}
        if op is Operator.STARTS_WITH:
            return {"$regex": f"^{escaped}"}
        if op is Operator.ENDS_WITH:
            return {"$regex": f"{escaped}$"}

        raise QueryCompilationError(f"Unsupported operator: {op}")

    def compile_match(self, constraint_set: ConstraintSet) -> Dict[str, Any]:
        """Compiles the body of the $match stage."""
        by_field: Dict[str, Dict[str, Any]] = {}
        for constraint in constraint_set.constraints:
            field, doc = self.compile_constraint(constraint)
            by_field.setdefault(field, {}).update(doc)

        match: Dict[str, Any] = {}
        for field, doc in by_field.items():
            # a lone equality stays in shorthand form
            match[field] = doc["$eq"] if list(doc) == ["$eq"] else doc

        groups = [[self.compile_match(s) for s in group] for group in constraint_set.or_groups]
        groups = [g for g in groups if g]
        if len(groups) == 1:
            match["$or"] = groups[0]
        elif len(groups) > 1:
            match["$and"] = [{"$or": g} for g in groups]

        return match

    def build_stages(
        self,
        constraint_set: Optional[ConstraintSet] = None,
        order: Optional[Iterable[OrderLike]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
        keys: Optional[Iterable[str]] = None,
    ) -> List[PipelineStage]:
        """
        Stages in their fixed order: Match, Sort, Skip, Limit, Project.

        Each is emitted only when it has something to do.
        """
        if skip is not None and skip < 0:
            raise QueryCompilationError(f"skip must be >= 0, got {skip}")
        if limit is not None and limit < 0:
            raise QueryCompilationError(f"limit must be >= 0, got {limit}")

        stages: List[PipelineStage] = []

        if constraint_set is not None and not constraint_set.is_empty:
            stages.append(Match(self.compile_match(constraint_set)))

        sort = self.compile_sort(order)
        if sort is not None:
            stages.append(sort)

        if skip:
            stages.append(Skip(skip))

        if limit is not None:
            stages.append(Limit(limit))

        field_names = [FieldMapper.to_wire(k) for k in (keys or [])]
        if field_names:
            stages.append(Project.include(field_names))

        logger.debug(f"Built {len(stages)} stages")
        return stages

    def compile_sort(self, order: Optional[Iterable[OrderLike]]) -> Optional[Sort]:
        orders = [Order.parse(o) for o in (order or [])]
        if not orders:
            return None
        return Sort([(FieldMapper.to_wire(o.field), o.sign) for o in orders])

    def match_stage(self, constraint_set: Optional[ConstraintSet]) -> Optional[Match]:
        if constraint_set is None or constraint_set.is_empty:
            return None
        return Match(self.compile_match(constraint_set))

    def compile_pipeline(
        self,
        constraint_set: Optional[ConstraintSet] = None,
        order: Optional[Iterable[OrderLike]] = None,
        skip: int = 0,
        limit: Optional[int] = None,
        keys: Optional[Iterable[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Main method to compile the pipeline."""
        pipeline = stages_to_pipeline(self.build_stages(constraint_set, order, skip, limit, keys))
        logger.debug(f"Pipeline compiled: {pipeline}")
        return pipeline

    def count_pipeline(self, constraint_set: Optional[ConstraintSet] = None) -> List[Dict[str, Any]]:
        return stages_to_pipeline([self.match_stage(constraint_set), Count("count")])
