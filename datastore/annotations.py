from __future__ import annotations

from typing import Callable, TypeVar

T = TypeVar("T", bound=type)

COLLECTION_ATTR = "__data_collection__"
KEY_ATTR = "__data_key__"


class DataKey:
    """
    Marks the identity-bearing attribute of an entity:

        player_id: Annotated[str, DataKey()]
    """

    def __repr__(self) -> str:
        return "DataKey()"


def data_collection(name: str, *, key: str | None = None) -> Callable[[T], T]:
    """
    Class decorator binding an entity type to its collection.

    `key` names the identity attribute explicitly; when omitted the
    attribute annotated with `DataKey` is used.
    """
    if not name or not name.strip():
        raise ValueError("collection name must be a non-empty string")

    def _decorate(cls: T) -> T:
        # Stored on the class dict only, so undecorated subclasses don't inherit it.
        setattr(cls, COLLECTION_ATTR, name)
        setattr(cls, KEY_ATTR, key)
        return cls

    return _decorate
