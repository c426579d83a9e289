from __future__ import annotations
from enum import Enum
from typing import Any, Iterator, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

SortDir = Literal["asc", "desc"]


class Operator(str, Enum):
    """Closed set of constraint operators understood by the compiler."""
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    EXISTS = "exists"
    IN = "in"
    NIN = "nin"
    ALL = "all"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    LIKE = "like"
    BEFORE = "before"
    AFTER = "after"
    ON_OR_BEFORE = "on_or_before"
    ON_OR_AFTER = "on_or_after"
    BETWEEN = "between"
    BETWEEN_DATES = "between_dates"


class Constraint(BaseModel):
    """A single `field <operator> value` condition."""
    model_config = ConfigDict(extra="forbid", arbitrary_types_allowed=True)

    field: str
    operator: Operator = Operator.EQ
    value: Any = None

    @field_validator("field")
    @classmethod
    def field_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Constraint field must not be empty")
        return v


class ConstraintSet(BaseModel):
    """
    Ordered conjunction of constraints plus any number of OR-groups.

    Each OR-group is a list of alternative ConstraintSets; the groups themselves are
    ANDed with each other and with the top-level constraints.
    """
    model_config = ConfigDict(extra="forbid")

    constraints: List[Constraint] = Field(default_factory=list)
    or_groups: List[List["ConstraintSet"]] = Field(default_factory=list)

    def add(self, field: str, operator: Union[Operator, str] = Operator.EQ, value: Any = None) -> "ConstraintSet":
        self.constraints.append(Constraint(field=field, operator=Operator(operator), value=value))
        return self

    def or_(self, *sets: "ConstraintSet") -> "ConstraintSet":
        group = [s for s in sets if not s.is_empty]
        if group:
            self.or_groups.append(group)
        return self

    @property
    def is_empty(self) -> bool:
        return not self.constraints and not self.or_groups

    def copy(self) -> "ConstraintSet":
        return ConstraintSet(
            constraints=list(self.constraints),
            or_groups=[[s.copy() for s in group] for group in self.or_groups],
        )

    def __len__(self) -> int:
        return len(self.constraints)

    def __iter__(self) -> Iterator[Constraint]:  # type: ignore[override]
        return iter(self.constraints)


class Order(BaseModel):
    """Sort instruction."""
    model_config = ConfigDict(extra="forbid")

    field: str
    direction: SortDir = "asc"

    @property
    def sign(self) -> int:
        return 1 if self.direction == "asc" else -1

    @classmethod
    def parse(cls, value: Union["Order", str]) -> "Order":
        """Accepts "field", "-field", "field-" or "field+"."""
        if isinstance(value, Order):
            return value
        if not isinstance(value, str) or not value.strip("+-").strip():
            raise ValueError(f"Invalid ordering: {value!r}")
        text = value.strip()
        if text.startswith("-"):
            return cls(field=text[1:], direction="desc")
        if text.endswith("-"):
            return cls(field=text[:-1], direction="desc")
        if text.endswith("+"):
            return cls(field=text[:-1], direction="asc")
        return cls(field=text, direction="asc")


ConstraintSet.model_rebuild()
