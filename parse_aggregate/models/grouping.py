from __future__ import annotations
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .constraints import Order


class DateUnit(str, Enum):
    YEAR = "year"
    MONTH = "month"
    WEEK = "week"
    DAY = "day"
    HOUR = "hour"
    MINUTE = "minute"
    SECOND = "second"

    @property
    def key_parts(self) -> List[str]:
        """Date group key components, coarse to fine, down to this unit."""
        if self is DateUnit.WEEK:
            return ["year", "week"]
        calendar = ["year", "month", "day", "hour", "minute", "second"]
        return calendar[: calendar.index(self.value) + 1]


# key component -> MongoDB date operator
DATE_PART_OPERATORS = {
    "year": "$year",
    "month": "$month",
    "week": "$isoWeek",
    "day": "$dayOfMonth",
    "hour": "$hour",
    "minute": "$minute",
    "second": "$second",
}


class Accumulator(str, Enum):
    COUNT = "count"
    SUM = "sum"
    AVERAGE = "average"
    MIN = "min"
    MAX = "max"

    @property
    def operator(self) -> str:
        return {
            Accumulator.COUNT: "$sum",
            Accumulator.SUM: "$sum",
            Accumulator.AVERAGE: "$avg",
            Accumulator.MIN: "$min",
            Accumulator.MAX: "$max",
        }[self]


class GroupDirective(BaseModel):
    """How to group the rows of a query by one field."""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., min_length=1)
    flatten_arrays: bool = False
    # True: keep the query's ordering for members; a list: explicit member ordering
    sortable: Union[bool, List[Order]] = False
    pointer: bool = False
    mongo_direct: bool = False

    @field_validator("sortable", mode="before")
    @classmethod
    def parse_orders(cls, v):
        if isinstance(v, (list, tuple)):
            return [Order.parse(o) for o in v]
        return v

    @property
    def is_sortable(self) -> bool:
        return self.sortable is True or (isinstance(self.sortable, list) and len(self.sortable) > 0)


class DateGroupDirective(BaseModel):
    """Group rows by a calendar interval of a date field."""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., min_length=1)
    unit: DateUnit = DateUnit.DAY
    return_pointers: bool = False
    sortable: Union[bool, List[Order]] = False
    # IANA name or "+05:30" style offset; UTC when unset
    timezone: Optional[str] = None
    mongo_direct: bool = False

    @field_validator("sortable", mode="before")
    @classmethod
    def parse_orders(cls, v):
        if isinstance(v, (list, tuple)):
            return [Order.parse(o) for o in v]
        return v

    @property
    def is_sortable(self) -> bool:
        return self.sortable is True or (isinstance(self.sortable, list) and len(self.sortable) > 0)
