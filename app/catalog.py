from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, Optional

from app.models import HistoryEntry, User, Video
from app.parser import VideoDataParser
from app.salesforce_client import SalesforceRestApi
from app.services import PurchasedVideoService, WatchedVideoService
from app.store import Cache, merge_metadata
from app.youtube_client import YouTubeData


logger = logging.getLogger("portal.catalog")

MEDIA_QUERY = (
    "SELECT Id, Name, Description__c, Event__c, Event__r.Name, Event__r.Start_Date__c, "
    "Speakers__c, ResourceId__c, Date__c, Published__c, IsPublic__c "
    "FROM Media__c ORDER BY Event__r.Start_Date__c DESC NULLS LAST"
)


@dataclass
class CatalogEntry:
    """One built catalog plus its build time."""
    parser: VideoDataParser = field(default_factory=VideoDataParser)
    last_refresh_ts: float = 0.0

    def is_stale(self, refresh_minutes: int) -> bool:
        if self.last_refresh_ts <= 0:
            return True
        return (time.time() - self.last_refresh_ts) > (refresh_minutes * 60)


@dataclass
class CatalogState:
    """Built catalogs keyed by the credentials that queried them.

    A catalog queried with one session's token is only served back to that session.
    """
    entries: Dict[str, CatalogEntry] = field(default_factory=dict)  # source key -> entry
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def parser(self, key: Optional[str]) -> VideoDataParser:
        entry = self.entries.get(key) if key else None
        return entry.parser if entry else VideoDataParser()

    def last_refresh(self, key: Optional[str]) -> float:
        entry = self.entries.get(key) if key else None
        return entry.last_refresh_ts if entry else 0.0

    def is_stale(self, key: str, refresh_minutes: int) -> bool:
        entry = self.entries.get(key)
        return entry is None or entry.is_stale(refresh_minutes)

    def prune(self, refresh_minutes: int) -> None:
        for key in [k for k, e in self.entries.items() if e.is_stale(refresh_minutes)]:
            self.entries.pop(key, None)


async def build_catalog(api: SalesforceRestApi, youtube: YouTubeData, default_thumbnail: str = "") -> VideoDataParser:
    """Query media records, parse them and attach external metadata."""
    resp = await api.query(MEDIA_QUERY)
    parser = VideoDataParser(default_thumbnail=default_thumbnail)
    videos = parser.parse(resp.get("records"))

    thumbs_cache = Cache("thumb")
    durations_cache = Cache("duration")
    uncached = Cache.get_uncached(Video.get_resource_ids(videos), thumbs_cache, durations_cache)

    # Failed metadata batches leave those videos on their defaults.
    await youtube.load(uncached)
    thumbs_cache.fill(youtube.get_thumbs())
    durations_cache.fill(youtube.get_durations())

    merge_metadata(videos, thumbs_cache, durations_cache)
    return parser


async def refresh_catalog(
    state: CatalogState,
    key: str,
    credentials: Callable[[], Awaitable[SalesforceRestApi]],
    youtube: YouTubeData,
    default_thumbnail: str = "",
    refresh_minutes: int = 30,
    force: bool = False,
) -> VideoDataParser:
    """Return the catalog for `key`, rebuilding it when stale or forced.

    `credentials` is only awaited when a rebuild happens.
    """
    async with state.lock:
        if not force and not state.is_stale(key, refresh_minutes):
            return state.entries[key].parser
        api = await credentials()
        youtube.reset()
        parser = await build_catalog(api, youtube, default_thumbnail)
        state.prune(refresh_minutes)
        state.entries[key] = CatalogEntry(parser=parser, last_refresh_ts=time.time())
        return parser


async def load_user_history(
    user: User,
    watched: WatchedVideoService,
    purchased: PurchasedVideoService,
) -> User:
    """Fetch both histories, then apply them to the user in one step."""
    watched.set_user_id(user.get_user_id())
    purchased.set_user_id(user.get_user_id())
    watched_resp, purchased_resp = await asyncio.gather(watched.load(), purchased.load())

    watched_entries = watched.entries(watched_resp)
    purchased_entries = purchased.entries(purchased_resp)
    user.watched = list(watched_entries)
    user.purchased = list(purchased_entries)

    watched.on_save(lambda rid, ts: user.add_watched(HistoryEntry(resource_id=rid, timestamp=ts)))
    purchased.on_save(lambda rid, ts: user.add_purchased(HistoryEntry(resource_id=rid, timestamp=ts)))
    logger.info(
        "Catalog: user %s has %d watched, %d purchased",
        user.get_user_id(),
        len(watched_entries),
        len(purchased_entries),
    )
    return user
