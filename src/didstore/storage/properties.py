# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Ourochronos Contributors

"""Multi-valued property bags ("notes") in JSON-LD compact form.

A bag maps a property name to an ordered set of scalar values.  On disk a
single value is written bare and several values as an array, matching how
JSON-LD ``addValue`` shapes data; in memory every property is a list.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Any, Union

from ..core.exceptions import ReservedPropertyError

Scalar = Union[str, int, float, bool]

RESERVED_PROPERTIES = frozenset({"id", "@id"})


def check_property(prop: str, action: str = "set") -> None:
    """Reject reserved property names before any mutation happens."""
    if prop in RESERVED_PROPERTIES:
        raise ReservedPropertyError(prop, action)


class PropertyBag:
    """Mapping of property name to a duplicate-free list of values."""

    def __init__(self, data: Mapping[str, Any] | None = None) -> None:
        self._props: dict[str, list[Scalar]] = {}
        if data:
            for prop, value in data.items():
                values = value if isinstance(value, list) else [value]
                for item in values:
                    if item not in self._props.setdefault(prop, []):
                        self._props[prop].append(item)

    # -- queries --

    def __contains__(self, prop: object) -> bool:
        return prop in self._props

    def __iter__(self) -> Iterator[str]:
        return iter(self._props)

    def __len__(self) -> int:
        return len(self._props)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PropertyBag):
            return self._props == other._props
        return NotImplemented

    def __repr__(self) -> str:
        return f"PropertyBag({self._props!r})"

    def values(self, prop: str) -> list[Scalar]:
        return list(self._props.get(prop, []))

    def first(self, prop: str, default: Scalar | None = None) -> Scalar | None:
        values = self._props.get(prop)
        return values[0] if values else default

    def has(self, prop: str, value: Scalar) -> bool:
        return value in self._props.get(prop, [])

    # -- mutations --

    def add(self, prop: str, value: Scalar) -> bool:
        """Add ``value`` unless already present. Returns True if added."""
        check_property(prop, "add")
        values = self._props.setdefault(prop, [])
        if value in values:
            return False
        values.append(value)
        return True

    def remove(self, prop: str, value: Scalar) -> bool:
        """Remove ``value`` if present. Returns True if removed."""
        check_property(prop, "remove")
        values = self._props.get(prop)
        if not values or value not in values:
            return False
        values.remove(value)
        if not values:
            del self._props[prop]
        return True

    def set(self, prop: str, value: Scalar) -> None:
        """Replace every value of ``prop`` with the single ``value``."""
        check_property(prop, "set")
        self._props[prop] = [value]

    def delete(self, prop: str) -> bool:
        return self._props.pop(prop, None) is not None

    def update(self, properties: Mapping[str, Scalar]) -> None:
        """Add each property/value pair with set semantics."""
        for prop in properties:
            check_property(prop, "add")
        for prop, value in properties.items():
            self.add(prop, value)

    # -- serialisation --

    def to_json(self) -> dict[str, Any]:
        return {
            prop: values[0] if len(values) == 1 else list(values)
            for prop, values in self._props.items()
        }

    @classmethod
    def from_json(cls, data: Mapping[str, Any] | None) -> PropertyBag:
        return cls(data)
