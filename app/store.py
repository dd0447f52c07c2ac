from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from app.models import Video


logger = logging.getLogger("portal.store")


@dataclass
class Cache:
    """
    Minimal in-memory key -> value lookup, one instance per metadata field.
    No eviction; lifetime is one catalog build.
    """
    name: str
    entries: Dict[str, Any] = field(default_factory=dict)  # resource_id -> descriptor

    def set(self, key: str, value: Any) -> None:
        self.entries[key] = value

    def get(self, key: str) -> Optional[Any]:
        return self.entries.get(key)

    def has(self, key: str) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def fill(self, items: Iterable[Dict[str, Any]]) -> None:
        for item in items or []:
            key = str(item.get("id") or "").strip()
            if key:
                self.set(key, item)

    @staticmethod
    def get_uncached(keys: Iterable[str], *caches: "Cache") -> List[str]:
        """Keys missing from at least one of the given caches."""
        return [k for k in keys if any(not c.has(k) for c in caches)]


def merge_metadata(videos: List[Video], thumbs: Cache, durations: Cache) -> int:
    """Attach cached thumbnail/duration descriptors to videos by resource id."""
    matched = 0
    for video in videos:
        thumb = thumbs.get(video.resource_id)
        duration = durations.get(video.resource_id)
        if thumb and thumb.get("thumbs"):
            video.set_thumbnail(thumb["thumbs"])
        if duration and duration.get("durations"):
            video.set_duration(duration["durations"])
        if thumb or duration:
            matched += 1
    logger.info("Cache: merged metadata into %d/%d videos", matched, len(videos))
    return matched
