from __future__ import annotations
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from ..models.pointer import PointerRef
from ..models.stages import Count, Group, PipelineStage, Project, stages_to_pipeline
from ..utils.logger import setup_logger
from .bridge import ExecutionMode
from .converter import FieldMapper

if TYPE_CHECKING:
    from .query import Query

logger = setup_logger(__name__)

DISTINCT_COUNT_FIELD = "distinctCount"
DISTINCT_VALUE_FIELD = "value"


class DistinctCounter:
    """
    Counts the distinct values a field takes across the rows matched by a query.

    With `pointer`, the values are read from the field's stored pointer column.
    """

    def __init__(
        self,
        query: "Query",
        field: str,
        pointer: bool = False,
        mode: ExecutionMode = ExecutionMode.REMOTE,
    ):
        self.query = query
        self.field = FieldMapper.to_wire(field)
        self.pointer = pointer
        self.mode = mode

    def key_expression(self) -> str:
        if self.pointer:
            return f"${FieldMapper.to_storage(self.field, pointer=True)}"
        return f"${self.field}"

    def build_stages(self) -> List[PipelineStage]:
        stages = [
            self.query.compiler.match_stage(self.query.constraints),
            Group(self.key_expression()),
            Count(DISTINCT_COUNT_FIELD),
        ]
        return [s for s in stages if s is not None]

    def pipeline(self) -> List[Dict[str, Any]]:
        return stages_to_pipeline(self.build_stages())

    def count(self) -> int:
        rows = self.query.execute(self.pipeline(), self.mode)
        # $count emits no row at all when nothing matched
        if not rows or not isinstance(rows[0], Mapping):
            return 0
        value = rows[0].get(DISTINCT_COUNT_FIELD)
        return int(value) if value is not None else 0


class DistinctValues:
    """
    The distinct values of a field.

    With `pointer`, the field is read from its stored pointer column and each value is a
    "Class$id" reference. Such references come back as PointerRefs when
    `return_pointers` is set, otherwise as bare object ids if they all share a class.
    """

    def __init__(
        self,
        query: "Query",
        field: str,
        return_pointers: bool = False,
        pointer: bool = False,
        mode: ExecutionMode = ExecutionMode.REMOTE,
    ):
        self.query = query
        self.field = FieldMapper.to_wire(field)
        self.return_pointers = return_pointers
        self.pointer = pointer
        self.mode = mode

    def key_expression(self) -> str:
        if self.pointer:
            return f"${FieldMapper.to_storage(self.field, pointer=True)}"
        return f"${self.field}"

    def build_stages(self) -> List[PipelineStage]:
        stages = [
            self.query.compiler.match_stage(self.query.constraints),
            Group(self.key_expression()),
            Project({"_id": 0, DISTINCT_VALUE_FIELD: "$_id"}),
        ]
        return [s for s in stages if s is not None]

    def pipeline(self) -> List[Dict[str, Any]]:
        return stages_to_pipeline(self.build_stages())

    def _as_pointer(self, value: Any) -> Optional[PointerRef]:
        # plain strings are only references when read from a pointer column
        if isinstance(value, str) and not self.pointer:
            return None
        return PointerRef.coerce(value)

    def decode(self, rows: List[Mapping]) -> List[Any]:
        values = [row.get(DISTINCT_VALUE_FIELD) for row in rows if isinstance(row, Mapping)]
        values = [v for v in values if v is not None]

        pointers = [self._as_pointer(v) for v in values]
        if not values or any(p is None for p in pointers):
            return values

        if self.return_pointers:
            return pointers
        if len({p.class_name for p in pointers}) == 1:
            return [p.object_id for p in pointers]
        return [p.to_compact() for p in pointers]

    def values(self) -> List[Any]:
        rows = self.query.execute(self.pipeline(), self.mode)
        values = self.decode(rows)
        logger.debug(f"{len(values)} distinct values for {self.query.table}.{self.field}")
        return values
