"""
Query facade.

A Query collects constraints and modifiers for one class and hands the compiled
pipeline to an ExecutionBridge. Modifier methods mutate the query and return it so
they can be chained; use `clone()` to branch.
"""
from __future__ import annotations
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..config import settings
from ..models.constraints import ConstraintSet, Operator, Order
from ..models.grouping import Accumulator, DateGroupDirective, DateUnit, GroupDirective
from ..models.stages import Group, PipelineStage, RawStage, stages_to_pipeline
from ..utils.logger import setup_logger
from .bridge import ExecutionBridge, ExecutionMode
from .converter import FieldMapper
from .distinct import DistinctCounter, DistinctValues
from .grouping import GroupBy, GroupByDate, date_grouping_for, grouping_for
from .query_compiler import QueryCompiler

logger = setup_logger(__name__)

OPERATOR_SEPARATOR = "__"
OPERATOR_NAMES = {op.value for op in Operator}
AGGREGATE_VALUE_FIELD = "value"


def _mode(mongo_direct: bool) -> ExecutionMode:
    return ExecutionMode.AUTO if mongo_direct else ExecutionMode.REMOTE


class Query:
    def __init__(self, table: str, bridge: Optional[ExecutionBridge] = None, compiler: Optional[QueryCompiler] = None):
        if not table:
            raise ValueError("Query needs a class name")
        self.table = table
        self.constraints = ConstraintSet()
        self.orders: List[Order] = []
        self._skip = 0
        self._limit: Optional[int] = None
        self._keys: List[str] = []
        self.compiler = compiler or QueryCompiler()
        self._bridge = bridge

    def __repr__(self) -> str:
        return f"<Query {self.table} constraints={len(self.constraints)} orders={self.orders}>"

    @property
    def bridge(self) -> ExecutionBridge:
        if self._bridge is None:
            self._bridge = ExecutionBridge.from_settings(settings)
        return self._bridge

    # -- building --------------------------------------------------------

    def where(self, field: str, operator: Union[Operator, str] = Operator.EQ, value: Any = None) -> "Query":
        self.constraints.add(field, operator, value)
        return self

    def where_all(self, conditions: Mapping[str, Any]) -> "Query":
        """Add one constraint per key; a `__<operator>` suffix such as `plays__gt` picks the operator."""
        for key, value in conditions.items():
            field, sep, suffix = key.rpartition(OPERATOR_SEPARATOR)
            if sep and field and suffix in OPERATOR_NAMES:
                self.where(field, Operator(suffix), value)
            else:
                self.where(key, Operator.EQ, value)
        return self

    def or_where(self, *sets: Union[ConstraintSet, "Query"]) -> "Query":
        self.constraints.or_(*(s.constraints.copy() if isinstance(s, Query) else s for s in sets))
        return self

    def order(self, *orders: Union[Order, str]) -> "Query":
        self.orders.extend(Order.parse(o) for o in orders)
        return self

    def skip(self, count: int) -> "Query":
        self._skip = count
        return self

    def limit(self, count: Optional[int]) -> "Query":
        self._limit = count
        return self

    def keys(self, *fields: str) -> "Query":
        self._keys.extend(fields)
        return self

    def clone(self) -> "Query":
        q = Query(self.table, bridge=self._bridge, compiler=self.compiler)
        q.constraints = self.constraints.copy()
        q.orders = list(self.orders)
        q._skip = self._skip
        q._limit = self._limit
        q._keys = list(self._keys)
        return q

    @staticmethod
    def _same_table(queries: Iterable["Query"]) -> List["Query"]:
        queries = [q for q in queries if q is not None]
        if not queries:
            raise ValueError("At least one query is required")
        table = queries[0].table
        if any(q.table != table for q in queries):
            raise ValueError("All combined queries must be for the same class")
        return queries

    @classmethod
    def or_(cls, *queries: "Query") -> "Query":
        """A query matching rows that satisfy any of `queries`."""
        queries = cls._same_table(queries)
        first = queries[0]
        combined = cls(first.table, bridge=first._bridge, compiler=first.compiler)
        combined.constraints.or_(*(q.constraints.copy() for q in queries))
        return combined

    @classmethod
    def and_(cls, *queries: "Query") -> "Query":
        """A query matching rows that satisfy all of `queries`."""
        queries = cls._same_table(queries)
        first = queries[0]
        combined = cls(first.table, bridge=first._bridge, compiler=first.compiler)
        for q in queries:
            combined.constraints.constraints.extend(q.constraints.constraints)
            combined.constraints.or_groups.extend([[s.copy() for s in g] for g in q.constraints.or_groups])
        return combined

    # -- compiling -------------------------------------------------------

    def build_stages(self) -> List[PipelineStage]:
        return self.compiler.build_stages(self.constraints, self.orders, self._skip, self._limit, self._keys)

    def pipeline(self) -> List[Dict[str, Any]]:
        return stages_to_pipeline(self.build_stages())

    def execute(self, pipeline: List[Mapping], mode: ExecutionMode = ExecutionMode.REMOTE) -> List[Dict[str, Any]]:
        logger.debug(f"{self.table}: executing {len(pipeline)} stages ({ExecutionMode(mode).value})")
        return self.bridge.execute(self.table, pipeline, mode)

    # -- results ---------------------------------------------------------

    def results(self, mongo_direct: bool = False) -> List[Dict[str, Any]]:
        return self.execute(self.pipeline(), _mode(mongo_direct))

    def results_direct(self) -> List[Dict[str, Any]]:
        return self.execute(self.pipeline(), ExecutionMode.DIRECT_ONLY)

    def first(self, mongo_direct: bool = False) -> Optional[Dict[str, Any]]:
        rows = self.clone().limit(1).results(mongo_direct=mongo_direct)
        return rows[0] if rows else None

    def first_direct(self) -> Optional[Dict[str, Any]]:
        rows = self.clone().limit(1).results_direct()
        return rows[0] if rows else None

    def _count(self, mode: ExecutionMode) -> int:
        rows = self.execute(self.compiler.count_pipeline(self.constraints), mode)
        if not rows:
            return 0
        return int(rows[0].get("count") or 0)

    def count(self, mongo_direct: bool = False) -> int:
        return self._count(_mode(mongo_direct))

    def count_direct(self) -> int:
        return self._count(ExecutionMode.DIRECT_ONLY)

    def count_distinct(self, field: str, pointer: bool = False, mongo_direct: bool = False) -> int:
        return DistinctCounter(self, field, pointer=pointer, mode=_mode(mongo_direct)).count()

    def count_distinct_direct(self, field: str, pointer: bool = False) -> int:
        return DistinctCounter(self, field, pointer=pointer, mode=ExecutionMode.DIRECT_ONLY).count()

    # -- single-value aggregates ----------------------------------------

    def aggregate_value_pipeline(self, accumulator: Union[Accumulator, str], field: str) -> List[Dict[str, Any]]:
        """Match, then one group over every matched row accumulating `field`."""
        accumulator = Accumulator(accumulator)
        if accumulator is Accumulator.COUNT:
            raise ValueError("use count() to count rows")
        operand = f"${FieldMapper.to_wire(field)}"
        stages = [
            self.compiler.match_stage(self.constraints),
            Group(None, {AGGREGATE_VALUE_FIELD: {accumulator.operator: operand}}),
        ]
        return stages_to_pipeline(stages)

    def _aggregate_value(self, accumulator: Accumulator, field: str, mongo_direct: bool) -> Any:
        rows = self.execute(self.aggregate_value_pipeline(accumulator, field), _mode(mongo_direct))
        value = rows[0].get(AGGREGATE_VALUE_FIELD) if rows else None
        # $group emits no row when nothing matched
        if value is None and accumulator is Accumulator.SUM:
            return 0
        return value

    def sum(self, field: str, mongo_direct: bool = False) -> Any:
        return self._aggregate_value(Accumulator.SUM, field, mongo_direct)

    def average(self, field: str, mongo_direct: bool = False) -> Optional[float]:
        return self._aggregate_value(Accumulator.AVERAGE, field, mongo_direct)

    avg = average

    def min(self, field: str, mongo_direct: bool = False) -> Any:
        return self._aggregate_value(Accumulator.MIN, field, mongo_direct)

    def max(self, field: str, mongo_direct: bool = False) -> Any:
        return self._aggregate_value(Accumulator.MAX, field, mongo_direct)

    def distinct(self, field: str, return_pointers: bool = False, pointer: bool = False, mongo_direct: bool = False) -> List[Any]:
        return DistinctValues(self, field, return_pointers=return_pointers, pointer=pointer, mode=_mode(mongo_direct)).values()

    def distinct_direct(self, field: str, return_pointers: bool = False, pointer: bool = False) -> List[Any]:
        return DistinctValues(
            self, field, return_pointers=return_pointers, pointer=pointer, mode=ExecutionMode.DIRECT_ONLY
        ).values()

    def aggregate_pipeline(self, stages: Iterable[Union[PipelineStage, Mapping]]) -> List[Dict[str, Any]]:
        """Match, then the caller's stages, then this query's sort and paging."""
        custom = [s if isinstance(s, PipelineStage) else RawStage(dict(s)) for s in stages]
        paging = self.compiler.build_stages(None, self.orders, self._skip, self._limit)
        return stages_to_pipeline([self.compiler.match_stage(self.constraints), *custom, *paging])

    def aggregate(self, stages: Iterable[Union[PipelineStage, Mapping]], mongo_direct: bool = False) -> List[Dict[str, Any]]:
        return self.execute(self.aggregate_pipeline(stages), _mode(mongo_direct))

    # -- grouping --------------------------------------------------------

    def group_by(
        self,
        field: str,
        flatten_arrays: bool = False,
        sortable: Union[bool, List[Union[Order, str]]] = False,
        pointer: bool = False,
        mongo_direct: bool = False,
    ) -> GroupBy:
        directive = GroupDirective(
            field=field,
            flatten_arrays=flatten_arrays,
            sortable=sortable,
            pointer=pointer,
            mongo_direct=mongo_direct,
        )
        return grouping_for(self, directive)

    def group_by_date(
        self,
        field: str,
        unit: Union[DateUnit, str] = DateUnit.DAY,
        sortable: Union[bool, List[Union[Order, str]]] = False,
        return_pointers: bool = False,
        timezone: Optional[str] = None,
        mongo_direct: bool = False,
    ) -> GroupByDate:
        directive = DateGroupDirective(
            field=field,
            unit=DateUnit(unit),
            sortable=sortable,
            return_pointers=return_pointers,
            timezone=timezone,
            mongo_direct=mongo_direct,
        )
        return date_grouping_for(self, directive)
