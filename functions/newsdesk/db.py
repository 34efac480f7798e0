"""
Durable item stores: a JSON file, a SQL database and an in-memory test double.

The file store is best-effort: it never raises, and reports failed writes as
``WriteOutcome.CACHED_ONLY`` so the caller knows only the runtime cache holds
the new state until a later write succeeds. The SQL store is assumed reliable
and surfaces every failure as ``UpstreamFailure``.
"""

from __future__ import annotations

import enum
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Protocol

from sqlalchemy import Column, String, Text, create_engine, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from newsdesk.errors import UpstreamFailure

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class WriteOutcome(enum.Enum):
    PERSISTED = "persisted"
    CACHED_ONLY = "cached_only"


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with millisecond precision."""
    value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value) -> Optional[datetime]:
    """
    Parse a stored createdAt value. Accepts ISO-8601 strings (with or without
    a trailing Z) and epoch milliseconds; returns None for anything else.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def created_at_sort_key(item: "Item") -> datetime:
    return parse_timestamp(item.created_at) or _EPOCH


@dataclass(frozen=True)
class Item:
    id: str
    title: str
    body: str = ""
    source: str = ""
    image_url: str = ""
    created_at: str = ""

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "source": self.source,
            "imageUrl": self.image_url,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        item_id = data.get("id")
        if not item_id:
            raise ValueError("item has no id")
        raw_created = data.get("createdAt")
        created = parse_timestamp(raw_created)
        return cls(
            id=str(item_id),
            title=str(data.get("title") or data.get("text") or ""),
            body=str(data.get("body") or ""),
            source=str(data.get("source") or data.get("sourceUrl") or ""),
            image_url=str(data.get("imageUrl") or ""),
            created_at=format_timestamp(created) if created else str(raw_created or ""),
        )


class ItemStore(Protocol):
    """Interface for the durable tier behind the runtime cache."""

    def read_all(self, limit: int | None = None) -> list[Item]:
        ...

    def append(self, item: Item) -> WriteOutcome:
        ...

    def remove(self, item_id: str) -> tuple[Optional[Item], WriteOutcome]:
        ...


def _newest_first(items: Iterable[Item], limit: int | None) -> list[Item]:
    ordered = sorted(items, key=created_at_sort_key, reverse=True)
    return ordered[:limit] if limit else ordered


class InMemoryItemStore:
    """Simple in-memory store for development and tests."""

    def __init__(self, items: Iterable[Item] = ()):
        self.items: list[Item] = list(items)

    def read_all(self, limit: int | None = None) -> list[Item]:
        return _newest_first(self.items, limit)

    def append(self, item: Item) -> WriteOutcome:
        self.items = [item] + [i for i in self.items if i.id != item.id]
        return WriteOutcome.PERSISTED

    def remove(self, item_id: str) -> tuple[Optional[Item], WriteOutcome]:
        for index, item in enumerate(self.items):
            if item.id == item_id:
                del self.items[index]
                return item, WriteOutcome.PERSISTED
        return None, WriteOutcome.PERSISTED


class JsonFileItemStore:
    """
    A single JSON document holding the ordered item list, rewritten in full
    on every mutation. Missing, unreadable or corrupt files read as empty.

    Mutations that could not be written are remembered and replayed into the
    next write, so one successful write brings the file back in line with
    everything the process has accepted.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._unsaved: dict[str, Item] = {}
        self._unsaved_removals: set[str] = set()
        self._behind = False

    def read_all(self, limit: int | None = None) -> list[Item]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as exc:
            logger.warning("Could not read items file %s: %s", self.path, exc)
            return []

        try:
            payload = json.loads(raw or "[]")
        except ValueError:
            logger.warning("Items file %s is corrupt; treating as empty", self.path)
            return []
        if isinstance(payload, dict):
            payload = payload.get("items")
        if not isinstance(payload, list):
            logger.warning("Items file %s has no item list; treating as empty", self.path)
            return []

        items: list[Item] = []
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            try:
                items.append(Item.from_dict(entry))
            except ValueError:
                continue
        return _newest_first(items, limit)

    def _current(self) -> list[Item]:
        """The file contents with every unsaved mutation applied."""
        items = {item.id: item for item in self.read_all()}
        items.update(self._unsaved)
        for item_id in self._unsaved_removals:
            items.pop(item_id, None)
        return _newest_first(items.values(), None)

    def write_all(self, items: list[Item]) -> WriteOutcome:
        body = json.dumps([item.as_dict() for item in items], ensure_ascii=False, indent=2)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(body, encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            logger.warning(
                "Could not persist %d items to %s: %s", len(items), self.path, exc
            )
            self._behind = True
            return WriteOutcome.CACHED_ONLY
        if self._behind:
            logger.info("Items file %s is up to date again", self.path)
            self._behind = False
        self._unsaved.clear()
        self._unsaved_removals.clear()
        return WriteOutcome.PERSISTED

    def append(self, item: Item) -> WriteOutcome:
        self._unsaved[item.id] = item
        self._unsaved_removals.discard(item.id)
        return self.write_all(self._current())

    def remove(self, item_id: str) -> tuple[Optional[Item], WriteOutcome]:
        current = self._current()
        removed = next((i for i in current if i.id == item_id), None)
        if removed is None:
            return None, WriteOutcome.PERSISTED
        self._unsaved.pop(item_id, None)
        self._unsaved_removals.add(item_id)
        return removed, self.write_all([i for i in current if i.id != item_id])


class SqlItemStore:
    """
    SQLAlchemy-backed store. Accepts any SQLAlchemy URL (e.g., Postgres or
    SQLite for tests). Failures propagate as UpstreamFailure.
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlItemStore")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    def _to_item(self, row: "ItemRow") -> Item:
        return Item(
            id=row.id,
            title=row.title,
            body=row.body or "",
            source=row.source or "",
            image_url=row.image_url or "",
            created_at=row.created_at,
        )

    def read_all(self, limit: int | None = None) -> list[Item]:
        stmt = select(ItemRow).order_by(ItemRow.created_at.desc())
        if limit:
            stmt = stmt.limit(limit)
        try:
            with self.Session() as session:
                rows = session.execute(stmt).scalars().all()
                return [self._to_item(row) for row in rows]
        except SQLAlchemyError as exc:
            logger.exception("Failed to load items")
            raise UpstreamFailure("Failed to load items") from exc

    def append(self, item: Item) -> WriteOutcome:
        try:
            with self.Session() as session:
                session.add(
                    ItemRow(
                        id=item.id,
                        title=item.title,
                        body=item.body,
                        source=item.source,
                        image_url=item.image_url,
                        created_at=item.created_at,
                    )
                )
                session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to add item %s", item.id)
            raise UpstreamFailure("Failed to add item") from exc
        return WriteOutcome.PERSISTED

    def remove(self, item_id: str) -> tuple[Optional[Item], WriteOutcome]:
        try:
            with self.Session() as session:
                row = session.get(ItemRow, item_id)
                if not row:
                    return None, WriteOutcome.PERSISTED
                removed = self._to_item(row)
                session.delete(row)
                session.commit()
        except SQLAlchemyError as exc:
            logger.exception("Failed to delete item %s", item_id)
            raise UpstreamFailure("Failed to delete item") from exc
        return removed, WriteOutcome.PERSISTED


Base = declarative_base()


class ItemRow(Base):
    __tablename__ = "items"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False, default="")
    source = Column(String, nullable=False, default="")
    image_url = Column(String, nullable=False, default="")
    # ISO-8601 UTC strings of one fixed width, so text order is time order.
    created_at = Column(String(32), nullable=False, index=True)
