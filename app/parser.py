from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from app.errors import MalformedRecord
from app.models import Video


logger = logging.getLogger("portal.parser")


class VideoDataParser:
    """Turn raw Media__c records into Video objects.

    Readiness is one-way: once a parse has completed the parser stays
    initialized for its lifetime, even if parse() is called again.
    """

    def __init__(self, default_thumbnail: str = "") -> None:
        self.default_thumbnail = default_thumbnail
        self.videos: List[Video] = []
        self.skipped: int = 0
        self._initialized = False

    def parse(self, records: Optional[List[Dict[str, Any]]]) -> List[Video]:
        videos: List[Video] = []
        skipped = 0
        for rec in records or []:
            try:
                videos.append(Video.from_record(rec, self.default_thumbnail))
            except MalformedRecord as exc:
                skipped += 1
                logger.warning("Parser: skipping record: %s", exc)
        self.videos = videos
        self.skipped = skipped
        self._initialized = True
        logger.info("Parser: parsed %d videos (%d skipped)", len(videos), skipped)
        return videos

    def get_videos(self) -> List[Video]:
        return list(self.videos)

    def get_video(self, resource_id: str) -> Optional[Video]:
        for v in self.videos:
            if v.resource_id == resource_id:
                return v
        return None

    def is_initialized(self) -> bool:
        return self._initialized
