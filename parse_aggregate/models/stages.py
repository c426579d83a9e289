"""
Aggregation pipeline stages.

Each stage renders itself with `to_dict()` into the `$`-prefixed document the
aggregation endpoint and MongoDB both understand.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union


@dataclass
class PipelineStage:
    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass
class Match(PipelineStage):
    query: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"$match": self.query}


@dataclass
class Group(PipelineStage):
    key: Any
    accumulators: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"_id": self.key}
        body.update(self.accumulators)
        return {"$group": body}


@dataclass
class Sort(PipelineStage):
    # (field, 1 | -1) in declared order
    fields: List[Tuple[str, int]]

    def to_dict(self) -> Dict[str, Any]:
        return {"$sort": {name: direction for name, direction in self.fields}}


@dataclass
class Skip(PipelineStage):
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"$skip": self.count}


@dataclass
class Limit(PipelineStage):
    count: int

    def to_dict(self) -> Dict[str, Any]:
        return {"$limit": self.count}


@dataclass
class Unwind(PipelineStage):
    path: str

    def to_dict(self) -> Dict[str, Any]:
        path = self.path if self.path.startswith("$") else f"${self.path}"
        return {"$unwind": path}


@dataclass
class Project(PipelineStage):
    fields: Dict[str, Any]

    @classmethod
    def include(cls, names: Iterable[str]) -> "Project":
        return cls({name: 1 for name in names})

    def to_dict(self) -> Dict[str, Any]:
        return {"$project": self.fields}


@dataclass
class AddFields(PipelineStage):
    fields: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return {"$addFields": self.fields}


@dataclass
class Count(PipelineStage):
    output_field: str = "count"

    def to_dict(self) -> Dict[str, Any]:
        return {"$count": self.output_field}


@dataclass
class RawStage(PipelineStage):
    """A caller supplied stage document, passed through untouched."""
    document: Dict[str, Any]

    def to_dict(self) -> Dict[str, Any]:
        return self.document


StageLike = Union[PipelineStage, Dict[str, Any]]


def stages_to_pipeline(stages: Iterable[Optional[StageLike]]) -> List[Dict[str, Any]]:
    """Render stages to plain documents, skipping `None` placeholders."""
    pipeline: List[Dict[str, Any]] = []
    for stage in stages:
        if stage is None:
            continue
        pipeline.append(stage.to_dict() if isinstance(stage, PipelineStage) else dict(stage))
    return pipeline
