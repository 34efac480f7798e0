"""
Item orchestration over the runtime cache and the durable store.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from newsdesk.cache import RuntimeCache
from newsdesk.db import Item, ItemStore, WriteOutcome, format_timestamp
from newsdesk.errors import Unauthenticated, UpstreamFailure, ValidationError
from newsdesk.merge import DEFAULT_LIST_LIMIT, merge_items

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ItemService:
    """
    Create, list and delete items.

    Writes go to the cache first and then to the durable store; a durable
    write that only reached the cache is logged, not surfaced. Create and
    delete are serialized by one lock so the cache and the store see
    mutations in the same order.
    """

    def __init__(
        self,
        cache: RuntimeCache,
        store: ItemStore,
        *,
        list_limit: int = DEFAULT_LIST_LIMIT,
        uploads_dir: Optional[str] = None,
        uploads_url_prefix: str = "/uploads",
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.cache = cache
        self.store = store
        self.list_limit = list_limit
        self.uploads_dir = Path(uploads_dir) if uploads_dir else None
        self.uploads_url_prefix = uploads_url_prefix.rstrip("/") + "/"
        self._clock = clock
        self._write_lock = threading.Lock()
        self._last_created: Optional[datetime] = None

    def _next_timestamp(self) -> str:
        now = self._clock()
        if self._last_created and now < self._last_created:
            now = self._last_created
        self._last_created = now
        return format_timestamp(now)

    @staticmethod
    def _require_identity(identity: Optional[str]) -> None:
        if not identity:
            raise Unauthenticated()

    def create(
        self,
        identity: str,
        *,
        title: str,
        body: str = "",
        source: str = "",
        image_url: str = "",
    ) -> Item:
        self._require_identity(identity)
        title = (title or "").strip()
        if not title:
            raise ValidationError("title is required")

        with self._write_lock:
            item = Item(
                id=uuid.uuid4().hex,
                title=title,
                body=(body or "").strip(),
                source=(source or "").strip(),
                image_url=(image_url or "").strip(),
                created_at=self._next_timestamp(),
            )
            self.cache.insert_front(item)
            try:
                outcome = self.store.append(item)
            except UpstreamFailure:
                self.cache.remove(item.id)
                raise
            self._settle_hidden(outcome)

        if outcome is WriteOutcome.CACHED_ONLY:
            logger.warning("Item %s is held in the runtime cache only", item.id)
        logger.info("Item %s created by %s", item.id, identity)
        return item

    def list(self) -> list[Item]:
        hidden = self.cache.hidden_ids()
        # Hidden ids may sit in the durable top N; read past them.
        durable = self.store.read_all(limit=self.list_limit + len(hidden))
        return merge_items(
            self.cache.items(),
            durable,
            hidden_ids=hidden,
            limit=self.list_limit,
        )

    def delete(self, identity: str, item_id: str) -> int:
        self._require_identity(identity)
        if not item_id:
            raise ValidationError("id is required")

        with self._write_lock:
            stored, outcome = self.store.remove(item_id)
            cached = self.cache.remove(item_id)
            if stored is not None and outcome is WriteOutcome.CACHED_ONLY:
                logger.warning("Delete of item %s is held in the runtime cache only", item_id)
                self.cache.hide(item_id)
            elif stored is not None:
                self._settle_hidden(outcome)

        removed = cached or stored
        if removed is None:
            return 0
        logger.info("Item %s deleted by %s", item_id, identity)
        if removed.image_url:
            self._remove_local_image(removed.image_url)
        return 1

    def _settle_hidden(self, outcome: WriteOutcome) -> None:
        # A persisted write carries every earlier unsaved delete with it.
        if outcome is WriteOutcome.PERSISTED and self.cache.hidden_ids():
            self.cache.clear_hidden()

    def _remove_local_image(self, image_url: str) -> None:
        if self.uploads_dir is None or not image_url.startswith(self.uploads_url_prefix):
            return
        name = Path(image_url[len(self.uploads_url_prefix):]).name
        if not name:
            return
        try:
            (self.uploads_dir / name).unlink()
        except FileNotFoundError:
            return
        except OSError as exc:
            logger.warning("Could not delete local image %s: %s", name, exc)
