from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from app.errors import MalformedRecord


def _related(record: Dict[str, Any], relation: str, name: str) -> Any:
    rel = record.get(relation) or {}
    if not isinstance(rel, dict):
        return None
    return rel.get(name)


def _speakers(raw: Any) -> List[str]:
    if not raw:
        return []
    if isinstance(raw, list):
        return [str(s).strip() for s in raw if str(s).strip()]
    return [s.strip() for s in str(raw).replace(";", ",").split(",") if s.strip()]


@dataclass
class HistoryEntry:
    resource_id: str
    timestamp: Any = 0

    def to_dict(self) -> Dict[str, Any]:
        return {"resourceId": self.resource_id, "timestamp": self.timestamp}


@dataclass
class User:
    user_id: str
    watched: List[HistoryEntry] = field(default_factory=list)
    purchased: List[HistoryEntry] = field(default_factory=list)

    def get_user_id(self) -> str:
        return self.user_id

    def add_watched(self, entry: HistoryEntry) -> None:
        self.watched.append(entry)

    def add_purchased(self, entry: HistoryEntry) -> None:
        self.purchased.append(entry)

    def has_watched(self, resource_id: str) -> bool:
        return any(e.resource_id == resource_id for e in self.watched)

    def has_purchased(self, resource_id: str) -> bool:
        return any(e.resource_id == resource_id for e in self.purchased)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "watched": [e.to_dict() for e in self.watched],
            "purchased": [e.to_dict() for e in self.purchased],
        }


@dataclass
class Video:
    id: str
    resource_id: str
    name: str = ""
    description: str = ""
    event_id: Optional[str] = None
    event_name: Optional[str] = None
    event_date: Optional[str] = None
    speakers: List[str] = field(default_factory=list)
    date: Optional[str] = None
    published: Optional[str] = None
    is_public: bool = False
    thumbnail: Optional[Any] = None
    duration: Optional[Any] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any], default_thumbnail: str = "") -> "Video":
        """Build a Video from one Media__c record; only an id is mandatory."""
        if not isinstance(record, dict):
            raise MalformedRecord("record is not an object")
        record_id = str(record.get("Id") or "").strip()
        resource_id = str(record.get("ResourceId__c") or "").strip() or record_id
        if not resource_id:
            raise MalformedRecord("record has neither ResourceId__c nor Id", record)
        return cls(
            id=record_id or resource_id,
            resource_id=resource_id,
            name=str(record.get("Name") or ""),
            description=str(record.get("Description__c") or ""),
            event_id=record.get("Event__c"),
            event_name=_related(record, "Event__r", "Name"),
            event_date=_related(record, "Event__r", "Start_Date__c"),
            speakers=_speakers(record.get("Speakers__c")),
            date=record.get("Date__c"),
            published=record.get("Published__c"),
            is_public=bool(record.get("IsPublic__c")),
            thumbnail=default_thumbnail or None,
        )

    def set_thumbnail(self, thumbnail: Any) -> None:
        self.thumbnail = thumbnail

    def set_duration(self, duration: Any) -> None:
        self.duration = duration

    @staticmethod
    def get_resource_ids(videos: List["Video"]) -> List[str]:
        seen = set()
        ids: List[str] = []
        for v in videos:
            if v.resource_id and v.resource_id not in seen:
                seen.add(v.resource_id)
                ids.append(v.resource_id)
        return ids

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "resourceId": self.resource_id,
            "name": self.name,
            "description": self.description,
            "eventId": self.event_id,
            "eventName": self.event_name,
            "eventDate": self.event_date,
            "speakers": list(self.speakers),
            "date": self.date,
            "published": self.published,
            "isPublic": self.is_public,
            "thumbnail": self.thumbnail,
            "duration": self.duration,
        }
