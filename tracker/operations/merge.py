"""
Snapshot merge operation.

Remote responses are sometimes partial: a search result may lack unit
collections, and the service occasionally returns empty lists while it is
catching up. Merging is done in one place so the coordinator and the record
store apply exactly the same rule:

- Scalar fields always come from the newer snapshot.
- Optional fields come from the newer snapshot only when present (not None)
  and, for collections, non-empty. Otherwise the older value is kept.

The result only ever gains information over time.
"""

from dataclasses import replace
from typing import Optional

from tracker.data_models.player import COLLECTION_FIELDS, OPTIONAL_FIELDS, PlayerSnapshot


def _has_value(field_name: str, value) -> bool:
    if value is None:
        return False
    if field_name in COLLECTION_FIELDS:
        return len(value) > 0
    return True


def merge_snapshots(old: Optional[PlayerSnapshot], new: PlayerSnapshot) -> PlayerSnapshot:
    """
    Merge a newer snapshot into an older one for the same player.

    Args:
        old: Previously known snapshot, or None
        new: Freshly fetched snapshot

    Returns:
        Merged snapshot

    Raises:
        ValueError: If the snapshots belong to different players
    """
    if old is None:
        return new

    if old.tag != new.tag:
        raise ValueError(f"Cannot merge snapshots for different players: {old.tag} != {new.tag}")

    retained = {}
    for field_name in OPTIONAL_FIELDS:
        new_value = getattr(new, field_name)
        if not _has_value(field_name, new_value):
            old_value = getattr(old, field_name)
            if _has_value(field_name, old_value):
                retained[field_name] = old_value

    if not retained:
        return new
    return replace(new, **retained)
