import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple

import httpx

from app.errors import UpstreamUnavailable


logger = logging.getLogger("portal.youtube")

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3"
# The videos endpoint accepts at most 50 ids per request.
BATCH_SIZE = 50

_DURATION_RE = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)


def parse_duration(value: str) -> Optional[int]:
    """Convert an ISO-8601 duration such as 'PT1H4M13S' to seconds."""
    if not value:
        return None
    m = _DURATION_RE.match(value.strip())
    if not m:
        return None
    parts = {k: int(v) for k, v in m.groupdict().items() if v}
    return (
        parts.get("days", 0) * 86400
        + parts.get("hours", 0) * 3600
        + parts.get("minutes", 0) * 60
        + parts.get("seconds", 0)
    )


class YouTubeData:
    """Batch loader for thumbnail and duration metadata.

    load() fetches once; later calls return the memoized result until reset().
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = YOUTUBE_API_URL,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport
        self._thumbs: List[Dict[str, Any]] = []
        self._durations: List[Dict[str, Any]] = []
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def _get(self, path: str, **params) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                r = await client.get(url, params=params, headers={"Accept": "application/json"})
                r.raise_for_status()
                return r.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("YouTube: request to %s failed", path, exc_info=True)
            raise UpstreamUnavailable(f"video host request failed: {exc}") from exc

    async def load(self, resource_ids: Iterable[str]) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        if self._loaded:
            return self._thumbs, self._durations

        ids = [i for i in dict.fromkeys(resource_ids or []) if i]
        thumbs: List[Dict[str, Any]] = []
        durations: List[Dict[str, Any]] = []
        if ids and not self.api_key:
            logger.warning("YouTube: no API key configured; skipping metadata for %d videos", len(ids))
            ids = []

        for start in range(0, len(ids), BATCH_SIZE):
            batch = ids[start:start + BATCH_SIZE]
            try:
                resp = await self._get(
                    "/videos",
                    part="snippet,contentDetails",
                    id=",".join(batch),
                    key=self.api_key,
                    maxResults=BATCH_SIZE,
                )
            except UpstreamUnavailable:
                # Keep what earlier batches returned; these ids fall back to defaults.
                logger.warning("YouTube: batch of %d ids starting at %d failed", len(batch), start)
                continue
            for item in resp.get("items", []) or []:
                vid = str(item.get("id") or "").strip()
                if not vid:
                    continue
                snippet = item.get("snippet") or {}
                details = item.get("contentDetails") or {}
                if snippet.get("thumbnails"):
                    thumbs.append({"id": vid, "thumbs": snippet["thumbnails"]})
                raw_duration = details.get("duration") or ""
                if raw_duration:
                    durations.append({"id": vid, "durations": raw_duration, "seconds": parse_duration(raw_duration)})

        self._thumbs = thumbs
        self._durations = durations
        self._loaded = True
        logger.info("YouTube: loaded %d thumbs, %d durations for %d ids", len(thumbs), len(durations), len(ids))
        return thumbs, durations

    def get_thumbs(self) -> List[Dict[str, Any]]:
        return list(self._thumbs)

    def get_durations(self) -> List[Dict[str, Any]]:
        return list(self._durations)

    def reset(self) -> None:
        self._thumbs = []
        self._durations = []
        self._loaded = False
