"""
Group-by aggregations.

Every grouping starts from the query's Match stage, appends its own grouping stages
and decodes the `{key, count, members?}` rows into a GroupedResult. The accumulated
number always comes back under `count`, whatever the accumulator.
"""
from __future__ import annotations
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from ..models.grouping import DATE_PART_OPERATORS, Accumulator, DateGroupDirective, DateUnit, GroupDirective
from ..models.pointer import PointerRef
from ..models.results import GroupedResult, GroupEntry, default_label
from ..models.stages import Group, PipelineStage, Project, Sort, Unwind, stages_to_pipeline
from ..utils.logger import setup_logger
from .bridge import ExecutionMode
from .converter import FieldMapper

if TYPE_CHECKING:
    from .query import Query

logger = setup_logger(__name__)

KEY_FIELD = "key"
VALUE_FIELD = "count"
MEMBERS_FIELD = "members"

# projection shared by every grouping: rename _id to key and keep the accumulated value
GROUP_PROJECTION = {"_id": 0, KEY_FIELD: "$_id", VALUE_FIELD: 1}


class GroupBy:
    """Group the rows of a query by the distinct values of one field."""

    collects_members = False

    def __init__(self, query: "Query", directive: GroupDirective):
        self.query = query
        self.directive = directive

    @property
    def field(self) -> str:
        return FieldMapper.to_wire(self.directive.field)

    @property
    def mode(self) -> ExecutionMode:
        return ExecutionMode.AUTO if self.directive.mongo_direct else ExecutionMode.REMOTE

    def key_expression(self) -> Any:
        if self.directive.pointer:
            return f"${FieldMapper.to_storage(self.field, pointer=True)}"
        return f"${self.field}"

    def accumulator_expression(self, accumulator: Accumulator, field: Optional[str]) -> Dict[str, Any]:
        if accumulator is Accumulator.COUNT:
            return {"$sum": 1}
        if not field:
            raise ValueError(f"{accumulator.value}() needs a field to aggregate")
        return {accumulator.operator: f"${FieldMapper.to_wire(field)}"}

    def member_sort(self) -> Optional[Sort]:
        return None

    def pre_group_stages(self) -> List[PipelineStage]:
        if self.directive.flatten_arrays:
            return [Unwind(self.field)]
        return []

    def build_stages(self, accumulator: Accumulator = Accumulator.COUNT, field: Optional[str] = None) -> List[PipelineStage]:
        accumulators: Dict[str, Any] = {VALUE_FIELD: self.accumulator_expression(accumulator, field)}
        if self.collects_members:
            accumulators[MEMBERS_FIELD] = {"$push": "$$ROOT"}

        projection = dict(GROUP_PROJECTION)
        if self.collects_members:
            projection[MEMBERS_FIELD] = 1

        stages: List[Optional[PipelineStage]] = [self.query.compiler.match_stage(self.query.constraints)]
        stages.extend(self.pre_group_stages())
        stages.append(self.member_sort())
        stages.append(Group(self.key_expression(), accumulators))
        stages.append(Project(projection))
        return [s for s in stages if s is not None]

    def pipeline(self, accumulator: Accumulator = Accumulator.COUNT, field: Optional[str] = None) -> List[Dict[str, Any]]:
        return stages_to_pipeline(self.build_stages(Accumulator(accumulator), field))

    # -- decoding --------------------------------------------------------

    def decode_key(self, key: Any) -> Any:
        if self.directive.pointer and key is not None:
            pointer = PointerRef.coerce(key)
            if pointer is not None:
                return pointer
        return key

    def decode_members(self, members: Any) -> Optional[tuple]:
        if not self.collects_members:
            return None
        return tuple(members or ())

    def label(self, key: Any) -> str:
        return default_label(key)

    def decode(self, rows: List[Mapping]) -> GroupedResult:
        entries = [
            GroupEntry(
                key=self.decode_key(row.get(KEY_FIELD)),
                count=row.get(VALUE_FIELD),
                members=self.decode_members(row.get(MEMBERS_FIELD)),
            )
            for row in rows
        ]
        return GroupedResult(entries, label=self.label)

    # -- execution -------------------------------------------------------

    def execute(self, accumulator: Accumulator = Accumulator.COUNT, field: Optional[str] = None) -> GroupedResult:
        accumulator = Accumulator(accumulator)
        pipeline = self.pipeline(accumulator, field)
        logger.info(f"Grouping {self.query.table} by {self.field} ({accumulator.value}, {len(pipeline)} stages)")
        rows = self.query.execute(pipeline, self.mode)
        return self.decode(rows)

    def count(self) -> GroupedResult:
        return self.execute(Accumulator.COUNT)

    def sum(self, field: str) -> GroupedResult:
        return self.execute(Accumulator.SUM, field)

    def average(self, field: str) -> GroupedResult:
        return self.execute(Accumulator.AVERAGE, field)

    avg = average

    def min(self, field: str) -> GroupedResult:
        return self.execute(Accumulator.MIN, field)

    def max(self, field: str) -> GroupedResult:
        return self.execute(Accumulator.MAX, field)


class SortableGroupBy(GroupBy):
    """GroupBy that also collects each group's rows, in a stable declared order."""

    collects_members = True

    def member_sort(self) -> Optional[Sort]:
        orders = self.directive.sortable if isinstance(self.directive.sortable, list) else []
        return self.query.compiler.compile_sort(orders or self.query.orders)


def format_date_key(key: Any, unit: DateUnit) -> str:
    """Label a date group key: 2023, 2023-09, 2023-W37, 2023-09-15, 2023-09-15 14:00."""
    if not isinstance(key, Mapping) or all(v is None for v in key.values()):
        return default_label(None if isinstance(key, Mapping) else key)

    parts = [key.get(p) or 0 for p in unit.key_parts]
    if unit is DateUnit.WEEK:
        return "%04d-W%02d" % tuple(parts)
    formats = {
        DateUnit.YEAR: "%04d",
        DateUnit.MONTH: "%04d-%02d",
        DateUnit.DAY: "%04d-%02d-%02d",
        DateUnit.HOUR: "%04d-%02d-%02d %02d:00",
        DateUnit.MINUTE: "%04d-%02d-%02d %02d:%02d",
        DateUnit.SECOND: "%04d-%02d-%02d %02d:%02d:%02d",
    }
    return formats[unit] % tuple(parts)


class GroupByDate(GroupBy):
    """Group rows by calendar interval of a date field; members are always collected."""

    collects_members = True

    def __init__(self, query: "Query", directive: DateGroupDirective):
        self.query = query
        self.directive = directive

    def date_operand(self) -> Any:
        if self.directive.timezone:
            return {"date": f"${self.field}", "timezone": self.directive.timezone}
        return f"${self.field}"

    def key_expression(self) -> Dict[str, Any]:
        unit = self.directive.unit
        operand = self.date_operand()
        key = {}
        for part in unit.key_parts:
            operator = DATE_PART_OPERATORS[part]
            if unit is DateUnit.WEEK and part == "year":
                # ISO weeks belong to the ISO week-numbering year
                operator = "$isoWeekYear"
            key[part] = {operator: operand}
        return key

    def pre_group_stages(self) -> List[PipelineStage]:
        return []

    def decode_key(self, key: Any) -> Any:
        if isinstance(key, Mapping):
            return {part: key.get(part) for part in self.directive.unit.key_parts}
        return key

    def decode_members(self, members: Any) -> Optional[tuple]:
        members = list(members or ())
        if not self.directive.return_pointers:
            return tuple(members)
        pointers = []
        for member in members:
            if not isinstance(member, Mapping):
                continue
            object_id = member.get("objectId") or member.get("_id")
            if object_id is not None:
                pointers.append(PointerRef(class_name=self.query.table, object_id=str(object_id)))
        return tuple(pointers)

    def label(self, key: Any) -> str:
        return format_date_key(key, self.directive.unit)


class SortableGroupByDate(GroupByDate):
    """GroupByDate whose members are pushed in a declared order."""

    def member_sort(self) -> Optional[Sort]:
        orders = self.directive.sortable if isinstance(self.directive.sortable, list) else []
        return self.query.compiler.compile_sort(orders or self.query.orders)


def grouping_for(query: "Query", directive: GroupDirective) -> GroupBy:
    cls = SortableGroupBy if directive.is_sortable else GroupBy
    return cls(query, directive)


def date_grouping_for(query: "Query", directive: DateGroupDirective) -> GroupByDate:
    cls = SortableGroupByDate if directive.is_sortable else GroupByDate
    return cls(query, directive)
