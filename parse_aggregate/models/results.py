"""
Grouped aggregation results.

A GroupedResult is built once from decoded group rows and never changes afterwards;
every sorted view is computed on first use and cached.
"""
from __future__ import annotations
import csv
import io
import json
from dataclasses import dataclass
from datetime import date, datetime
from functools import cached_property
from typing import Any, Callable, Dict, Hashable, Iterable, Iterator, List, Optional, Sequence, Tuple

from .pointer import PointerRef

TABLE_FORMATS = ("ascii", "csv", "json")

_MISSING = object()


@dataclass(frozen=True)
class GroupEntry:
    key: Any
    count: Any
    members: Optional[Tuple[Any, ...]] = None


def freeze_key(key: Any) -> Hashable:
    """Hashable form of a group key; dict and list keys compare by value."""
    if isinstance(key, dict):
        return ("__dict__", tuple(sorted((str(k), freeze_key(v)) for k, v in key.items())))
    if isinstance(key, (list, tuple)):
        return ("__seq__", tuple(freeze_key(v) for v in key))
    return key


def sort_token(value: Any) -> Tuple:
    """Total ordering across the value types group keys and counts can take."""
    if value is None:
        return (0,)
    if isinstance(value, bool):
        return (1, value)
    if isinstance(value, (int, float)):
        return (2, value)
    if isinstance(value, str):
        return (3, value)
    if isinstance(value, datetime):
        return (4, value.isoformat())
    if isinstance(value, date):
        return (4, value.isoformat())
    if isinstance(value, PointerRef):
        return (5, value.class_name, value.object_id)
    if isinstance(value, dict):
        return (6, tuple(sort_token(v) for v in value.values()))
    if isinstance(value, (list, tuple)):
        return (7, tuple(sort_token(v) for v in value))
    return (8, str(value))


def default_label(key: Any) -> str:
    if key is None:
        return "null"
    return str(key)


class GroupedResult:
    """Ordered, immutable mapping of group key -> accumulated value."""

    def __init__(self, entries: Iterable[GroupEntry], label: Optional[Callable[[Any], str]] = None):
        self._entries: Tuple[GroupEntry, ...] = tuple(entries)
        self._label = label
        self._index: Dict[Hashable, GroupEntry] = {}
        for entry in self._entries:
            self._index.setdefault(freeze_key(entry.key), entry)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[Any, Any]], label: Optional[Callable[[Any], str]] = None) -> "GroupedResult":
        return cls((GroupEntry(key=k, count=v) for k, v in pairs), label=label)

    @property
    def entries(self) -> Tuple[GroupEntry, ...]:
        return self._entries

    def __iter__(self) -> Iterator[GroupEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, key: Any) -> Any:
        return self._index[freeze_key(key)].count

    def __contains__(self, key: Any) -> bool:
        return freeze_key(key) in self._index

    def __repr__(self) -> str:
        return f"GroupedResult({self.to_pairs()!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, GroupedResult):
            return self._entries == other._entries
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def get(self, key: Any, default: Any = None) -> Any:
        entry = self._index.get(freeze_key(key), _MISSING)
        return default if entry is _MISSING else entry.count

    def keys(self) -> List[Any]:
        return [e.key for e in self._entries]

    def counts(self) -> List[Any]:
        return [e.count for e in self._entries]

    def to_pairs(self) -> List[Tuple[Any, Any]]:
        return [(e.key, e.count) for e in self._entries]

    def members(self, key: Any) -> Tuple[Any, ...]:
        """Rows collected for `key` (empty when the grouping did not collect members)."""
        entry = self._index.get(freeze_key(key))
        if entry is None:
            raise KeyError(key)
        return entry.members or ()

    def label(self, key: Any) -> str:
        return self._label(key) if self._label else default_label(key)

    def to_dict(self) -> Dict[Any, Any]:
        if self._label:
            return {self._label(e.key): e.count for e in self._entries}
        return {freeze_key(e.key): e.count for e in self._entries}

    # -- sorted views ----------------------------------------------------

    @cached_property
    def _by_key_asc(self) -> Tuple[Tuple[Any, Any], ...]:
        return tuple(sorted(self.to_pairs(), key=lambda p: sort_token(p[0])))

    @cached_property
    def _by_key_desc(self) -> Tuple[Tuple[Any, Any], ...]:
        return tuple(sorted(self.to_pairs(), key=lambda p: sort_token(p[0]), reverse=True))

    @cached_property
    def _by_value_asc(self) -> Tuple[Tuple[Any, Any], ...]:
        return tuple(sorted(self.to_pairs(), key=lambda p: sort_token(p[1])))

    @cached_property
    def _by_value_desc(self) -> Tuple[Tuple[Any, Any], ...]:
        return tuple(sorted(self.to_pairs(), key=lambda p: sort_token(p[1]), reverse=True))

    def sort_by_key_asc(self) -> Tuple[Tuple[Any, Any], ...]:
        return self._by_key_asc

    def sort_by_key_desc(self) -> Tuple[Tuple[Any, Any], ...]:
        return self._by_key_desc

    def sort_by_value_asc(self) -> Tuple[Tuple[Any, Any], ...]:
        return self._by_value_asc

    def sort_by_value_desc(self) -> Tuple[Tuple[Any, Any], ...]:
        return self._by_value_desc

    # -- rendering -------------------------------------------------------

    def to_table(self, format: str = "ascii", headers: Sequence[str] = ("Group", "Count")) -> str:
        if format not in TABLE_FORMATS:
            raise ValueError(f"Unsupported format: {format}. Use one of {', '.join(TABLE_FORMATS)}")

        rows = [(self.label(e.key), e.count) for e in self._entries]

        if format == "csv":
            buf = io.StringIO()
            writer = csv.writer(buf, lineterminator="\n")
            writer.writerow(headers)
            for label, count in rows:
                writer.writerow([label, "null" if count is None else count])
            return buf.getvalue()

        if format == "json":
            return json.dumps([dict(zip(headers, row)) for row in rows], indent=2, default=str)

        if not rows:
            return "No results found."
        cells = [[label, "null" if count is None else str(count)] for label, count in rows]
        widths = [max(3, len(h), *(len(r[i]) for r in cells)) for i, h in enumerate(headers)]
        border = "+" + "+".join("-" * (w + 2) for w in widths) + "+"
        lines = [border, "|" + "|".join(f" {h.ljust(w)} " for h, w in zip(headers, widths)) + "|", border]
        for row in cells:
            lines.append("|" + "|".join(f" {c.ljust(w)} " for c, w in zip(row, widths)) + "|")
        lines.append(border)
        return "\n".join(lines)
