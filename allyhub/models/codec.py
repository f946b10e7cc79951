"""Typed codec for game maps.

A game map associates a closed integer id space (research, buildings, ships,
defense, resources) with integer counts or levels. In storage and on the wire
the keys are strings; inside the services they are ints.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional

logger = logging.getLogger(__name__)

GameMap = Dict[int, int]

METAL = 901
CRYSTAL = 902
DEUTERIUM = 903

MAP_FIELDS = ("buildings", "fleet", "defense", "resources")


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def decode_map(raw: Any) -> GameMap:
    """Decode a stored or submitted map into {int: int}.

    Accepts a dict, JSON text, or None. Entries whose key or value is not
    integral are dropped.
    """
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.debug("game_map_undecodable")
            return {}
    if not isinstance(raw, Mapping):
        return {}
    decoded: GameMap = {}
    for key, value in raw.items():
        k = _as_int(key)
        v = _as_int(value)
        if k is None or v is None:
            continue
        decoded[k] = v
    return decoded


def encode_map(mapping: Optional[Mapping[Any, Any]]) -> Optional[Dict[str, int]]:
    """Canonical storage form: string keys in numeric order. None stays None."""
    if mapping is None:
        return None
    decoded = decode_map(dict(mapping))
    return {str(k): decoded[k] for k in sorted(decoded)}


def to_wire(mapping: Optional[Mapping[Any, Any]]) -> Dict[str, int]:
    return encode_map(mapping) or {}


def resource_triplet(raw: Any) -> tuple[int, int, int]:
    """(metal, crystal, deuterium) of a resources map, zero when absent."""
    decoded = decode_map(raw)
    return decoded.get(METAL, 0), decoded.get(CRYSTAL, 0), decoded.get(DEUTERIUM, 0)


def sum_maps(maps) -> GameMap:
    total: GameMap = {}
    for raw in maps:
        for k, v in decode_map(raw).items():
            total[k] = total.get(k, 0) + v
    return total


__all__ = [
    "GameMap",
    "METAL",
    "CRYSTAL",
    "DEUTERIUM",
    "MAP_FIELDS",
    "decode_map",
    "encode_map",
    "to_wire",
    "resource_triplet",
    "sum_maps",
]
