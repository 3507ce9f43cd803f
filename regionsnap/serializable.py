"""
Serializable mixin for dataclasses.

Provides to_dict()/from_dict() using dataclasses.fields() introspection.
Handles nested Serializable objects, lists and Path coercion.

Deserialization is lenient: missing fields that have defaults are
skipped, so older config files keep loading after fields are added.
"""

import dataclasses
from pathlib import Path
from typing import get_args, get_origin, get_type_hints


class Serializable:
    """Mixin that adds to_dict() and from_dict() to dataclasses.

    Usage:
        @dataclass
        class MyConfig(Serializable):
            name: str
            count: int = 0

        d = MyConfig("x", 5).to_dict()   # {"name": "x", "count": 5}
        obj = MyConfig.from_dict(d)       # MyConfig(name="x", count=5)

    Set `_skip_none = True` on the class to omit None-valued fields from to_dict().
    """

    _skip_none: bool = False

    def to_dict(self) -> dict:
        result = {}
        for f in dataclasses.fields(self):  # type: ignore[arg-type]
            value = getattr(self, f.name)
            if self._skip_none and value is None:
                continue
            result[f.name] = _serialize(value)
        return result

    @classmethod
    def from_dict(cls, d: dict):
        hints = get_type_hints(cls)
        kwargs = {}
        for f in dataclasses.fields(cls):  # type: ignore[arg-type]
            if f.name not in d:
                # Missing fields fall back to their defaults; required ones
                # make the constructor raise.
                continue
            kwargs[f.name] = _deserialize(d[f.name], hints.get(f.name))
        return cls(**kwargs)


def _serialize(value):
    if isinstance(value, Serializable):
        return value.to_dict()
    if isinstance(value, list):
        return [_serialize(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize(v) for k, v in value.items()}
    if isinstance(value, Path):
        return str(value)
    return value


def _deserialize(value, field_type):
    if value is None:
        return None

    actual_type = _unwrap_optional(field_type)

    if (
        isinstance(value, dict)
        and isinstance(actual_type, type)
        and issubclass(actual_type, Serializable)
    ):
        return actual_type.from_dict(value)

    if actual_type is Path and isinstance(value, str):
        return Path(value)

    return value


def _unwrap_optional(tp):
    """Unwrap X | None to X."""
    origin = get_origin(tp)
    if origin is type(int | str):  # types.UnionType for X | Y syntax
        args = get_args(tp)
        non_none = [a for a in args if a is not type(None)]
        if len(non_none) == 1:
            return non_none[0]
    return tp
