from __future__ import annotations
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from firebase_admin import firestore
from google.cloud.firestore_v1 import FieldFilter  # type: ignore
from pydantic import ValidationError

from app.models.items import Item
from app.scripts.logging_config import get_logger

logger = get_logger("item_store")

# Firestore 구조
# items/{item_id}  { title, description, color, location, when_lost, status, type, user_id, hub, image_path, created_at }


def _to_datetime(v: Any) -> Optional[datetime]:
    # Firestore Timestamp 는 datetime 서브클래스, 문자열은 ISO 로 가정
    if v is None or isinstance(v, datetime):
        return v
    try:
        return datetime.fromisoformat(str(v))
    except ValueError:
        return None


def _sort_key(item: Item) -> datetime:
    ts = item.created_at
    if ts is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts


class FirestoreItemStore:
    """Read-only view over the items collection."""

    def __init__(self, collection: str = "items", db=None):
        self.collection = collection
        self._db = db

    def get_db(self):
        if self._db is None:
            self._db = firestore.client()
        return self._db

    def fetch_open_lost_items(self) -> List[Item]:
        col = self.get_db().collection(self.collection)
        # where + order_by 조합은 복합 인덱스가 필요하므로 정렬은 메모리에서 처리
        query = (col.where(filter=FieldFilter("type", "==", "lost"))
                    .where(filter=FieldFilter("status", "==", "open")))
        items: List[Item] = []
        skipped = 0
        for snap in query.stream():
            data: Dict[str, Any] = snap.to_dict() or {}
            data["id"] = data.get("id") or snap.id
            for f in ("created_at", "when_lost"):
                data[f] = _to_datetime(data.get(f))
            try:
                items.append(Item.model_validate(data))
            except ValidationError as e:
                skipped += 1
                logger.warning("item_store.skip doc=%s/%s err=%s", self.collection, snap.id, str(e)[:180])
        items.sort(key=_sort_key, reverse=True)
        logger.info("firestore.read op=query col=%s type=lost status=open count=%d skipped=%d",
                    self.collection, len(items), skipped)
        return items
