from __future__ import annotations

import io
from typing import Annotated, BinaryIO

from pydantic import Field

from .annotations import DataKey, data_collection
from .interfaces import StorableBinaryData, StorableStructuredData


@data_collection("player_stats")
class PlayerStatsData(StorableStructuredData):
    """Per-player statistic counters, keyed by player id."""

    player_id: Annotated[str, DataKey()]
    stats: dict[str, int] = Field(default_factory=dict)

    def increment(self, stat: str, amount: int = 1) -> int:
        self.stats[stat] = self.stats.get(stat, 0) + int(amount)
        return self.stats[stat]


@data_collection("player_levels")
class PlayerLevelData(StorableStructuredData):
    player_id: Annotated[str, DataKey()]
    experience: int = 0


@data_collection("worlds")
class WorldBinaryData(StorableBinaryData):
    """
    A zipped world archive. The key is "<bucket>:<world id>".
    """

    key: Annotated[str, DataKey()]

    def __init__(self, key: str = "", data: bytes | None = None):
        self.key = key
        self.data = data

    @classmethod
    def for_world(cls, world_bucket: str, world_id: str, data: bytes | None = None) -> "WorldBinaryData":
        return cls(cls.make_key(world_bucket, world_id), data)

    @staticmethod
    def make_key(world_bucket: str, world_id: str) -> str:
        return f"{world_bucket}:{world_id}"

    def open(self) -> BinaryIO:
        return io.BytesIO(self.data or b"")

    def load(self, stream: BinaryIO) -> None:
        self.data = stream.read()

    def size_in_bytes(self) -> int:
        return len(self.data) if self.data is not None else 0
