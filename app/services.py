from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List

from app.models import HistoryEntry
from app.salesforce_client import SalesforceRestApi


logger = logging.getLogger("portal.services")

SaveListener = Callable[[str, Any], None]


def _soql_literal(value: str) -> str:
    return "'" + str(value).replace("\\", "\\\\").replace("'", "\\'") + "'"


class HistoryService:
    """Per-user history records stored as a CRM custom object."""

    sobject = ""
    timestamp_field = "Timestamp__c"

    def __init__(self, api: SalesforceRestApi) -> None:
        self.api = api
        self.user_id = ""
        self._listeners: List[SaveListener] = []

    def set_user_id(self, user_id: str) -> None:
        self.user_id = user_id

    def on_save(self, callback: SaveListener) -> None:
        self._listeners.append(callback)

    def query(self) -> str:
        return (
            f"SELECT Id, ResourceID__c, {self.timestamp_field} FROM {self.sobject} "
            f"WHERE UserId__c = {_soql_literal(self.user_id)} ORDER BY CreatedDate DESC"
        )

    async def load(self) -> Dict[str, Any]:
        return await self.api.query(self.query())

    def entries(self, resp: Dict[str, Any]) -> List[HistoryEntry]:
        records = resp.get("records") if isinstance(resp, dict) else None
        if records is None:
            logger.error("%s: no records found. Check access token.", self.sobject)
            return []
        out: List[HistoryEntry] = []
        for rec in records:
            resource_id = str(rec.get("ResourceID__c") or "").strip()
            if not resource_id:
                continue
            out.append(HistoryEntry(resource_id=resource_id, timestamp=self.timestamp(rec)))
        return out

    def timestamp(self, record: Dict[str, Any]) -> Any:
        return record.get(self.timestamp_field) or 0

    async def save(self, resource_id: str, timestamp: Any = None) -> Dict[str, Any]:
        if timestamp is None:
            timestamp = int(time.time())
        fields = {"UserId__c": self.user_id, "ResourceID__c": resource_id, self.timestamp_field: timestamp}
        result = await self.api.insert(self.sobject, fields)
        logger.info("%s: saved %s for user %s", self.sobject, resource_id, self.user_id)
        for callback in list(self._listeners):
            callback(resource_id, timestamp)
        return result


class WatchedVideoService(HistoryService):
    sobject = "Watched__c"


class PurchasedVideoService(HistoryService):
    sobject = "Purchased__c"

    def timestamp(self, record: Dict[str, Any]) -> Any:
        # Purchase records carry no reliable timestamp.
        return 0
