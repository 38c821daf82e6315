from __future__ import annotations

import inspect
import logging
import threading
import typing
from dataclasses import dataclass
from typing import Any, Annotated

from pydantic import BaseModel

from .annotations import COLLECTION_ATTR, KEY_ATTR, DataKey
from .errors import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntityMetadata:
    collection_name: str
    key_field: str

    def key_of(self, entity: Any) -> str:
        value = getattr(entity, self.key_field, None)
        if value is None:
            raise ConfigurationError(
                f"{type(entity).__name__}.{self.key_field} is the key field and must not be None"
            )
        if not isinstance(value, str):
            raise ConfigurationError(
                f"{type(entity).__name__}.{self.key_field} must be a str, got {type(value).__name__}"
            )
        return value


def resolve_collection_name(cls: type) -> str:
    # Looked up on the class dict: an undecorated subclass is not storable.
    name = cls.__dict__.get(COLLECTION_ATTR)
    if not isinstance(name, str) or not name:
        raise ConfigurationError(f"{cls.__qualname__} is not a storable data class (missing @data_collection)")
    return name


def _is_key_marker(meta: Any) -> bool:
    return isinstance(meta, DataKey) or meta is DataKey


def _model_attributes(cls: type[BaseModel]) -> list[tuple[str, bool]]:
    fields = cls.model_fields
    own = [name for name in inspect.get_annotations(cls) if name in fields]
    ordered = own + [name for name in fields if name not in own]
    return [(name, any(_is_key_marker(m) for m in fields[name].metadata)) for name in ordered]


def _plain_attributes(cls: type) -> list[tuple[str, bool]]:
    out: list[tuple[str, bool]] = []
    seen: set[str] = set()
    for klass in cls.__mro__:
        if klass is object or klass.__module__ == "abc":
            continue
        try:
            hints = inspect.get_annotations(klass, eval_str=True)
        except Exception as e:
            raise ConfigurationError(f"cannot resolve annotations of {klass.__qualname__}: {e!r}") from e
        for name, hint in hints.items():
            if name in seen:
                continue
            seen.add(name)
            marked = typing.get_origin(hint) is Annotated and any(_is_key_marker(m) for m in hint.__metadata__)
            out.append((name, marked))
    return out


def _attributes(cls: type) -> list[tuple[str, bool]]:
    """(name, is-key-marked) pairs: own declarations first, then inherited ones."""
    if isinstance(cls, type) and issubclass(cls, BaseModel):
        return _model_attributes(cls)
    return _plain_attributes(cls)


def resolve_key_field(cls: type) -> str:
    """
    Return the name of the identity attribute of `cls`.

    An explicit `@data_collection(..., key=...)` wins. Otherwise attributes
    annotated with `DataKey` are scanned: those declared on `cls` itself
    first, then inherited ones in MRO order. With several candidates the
    first one found is used.
    """
    attributes = _attributes(cls)

    explicit = cls.__dict__.get(KEY_ATTR)
    if explicit is not None:
        if explicit not in {name for name, _ in attributes}:
            raise ConfigurationError(f"{cls.__qualname__} declares key {explicit!r} but has no such attribute")
        return explicit

    candidates = [name for name, marked in attributes if marked]

    if not candidates:
        raise ConfigurationError(f"{cls.__qualname__} has no key field")
    if len(candidates) > 1:
        logger.warning(
            "%s marks several key fields %s; using %r",
            cls.__qualname__,
            candidates,
            candidates[0],
        )
    return candidates[0]


class MetadataRegistry:
    """
    Process-wide memo of entity type -> (collection, key field).

    Failed resolutions are not cached; they fail the same way on every call.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[type, EntityMetadata] = {}

    def metadata_for(self, cls: type) -> EntityMetadata:
        entry = self._entries.get(cls)
        if entry is not None:
            return entry
        with self._guard:
            entry = self._entries.get(cls)
            if entry is None:
                entry = EntityMetadata(
                    collection_name=resolve_collection_name(cls),
                    key_field=resolve_key_field(cls),
                )
                self._entries[cls] = entry
            return entry

    def collection_name(self, cls: type) -> str:
        return self.metadata_for(cls).collection_name

    def key_field(self, cls: type) -> str:
        return self.metadata_for(cls).key_field

    def __contains__(self, cls: type) -> bool:
        return cls in self._entries

    def clear(self) -> None:
        with self._guard:
            self._entries.clear()


GLOBAL_METADATA = MetadataRegistry()
