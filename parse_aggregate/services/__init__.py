from .bridge import ExecutionBridge, ExecutionMode
from .converter import (
    FieldMapper,
    document_to_wire,
    encode_constraints,
    encode_pipeline,
    encode_stage,
    iso_format,
    to_datetime,
    to_wire_date,
    to_wire_value,
)
from .distinct import DistinctCounter, DistinctValues
from .executors import DirectExecutor, RemoteExecutor
from .grouping import GroupBy, GroupByDate, SortableGroupBy, SortableGroupByDate, format_date_key
from .query import Query
from .query_compiler import QueryCompiler

__all__ = [
    "ExecutionBridge",
    "ExecutionMode",
    "FieldMapper",
    "document_to_wire",
    "encode_constraints",
    "encode_pipeline",
    "encode_stage",
    "iso_format",
    "to_datetime",
    "to_wire_date",
    "to_wire_value",
    "DistinctCounter",
    "DistinctValues",
    "DirectExecutor",
    "RemoteExecutor",
    "GroupBy",
    "GroupByDate",
    "SortableGroupBy",
    "SortableGroupByDate",
    "format_date_key",
    "Query",
    "QueryCompiler",
]
