"""
Document-backed persistence.

Each logical document ("settings", "data") is one row in the `documents`
table holding a JSON object. Reads load the whole document; writes replace
it in a single transaction. There is no partial-write primitive, so every
mutation is read-full-document -> modify in memory -> write-full-document.

Single writer: callers must await mutations one after another. Two
unawaited read-modify-write cycles on the same document can lose updates.
"""
from __future__ import annotations

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar, Union

from pydantic import ValidationError
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from vidstudy.core.errors import DuplicateVideoError, StorageError
from vidstudy.db.session import init_db, make_session_factory
from vidstudy.models.document import Document
from vidstudy.schemas.base import CamelModel, utcnow
from vidstudy.schemas.chat import ChatSession
from vidstudy.schemas.session import VideoSession
from vidstudy.schemas.settings import AIProvider, AppSettings

logger = logging.getLogger(__name__)

SETTINGS_DOCUMENT = "settings"
DATA_DOCUMENT = "data"

SETTINGS_KEY = "app_settings"
SESSIONS_KEY = "video_sessions"
CHATS_KEY = "chat_sessions"
# owned by collaborators outside the core; carried through untouched
NOTES_KEY = "notes"
TODOS_KEY = "todos"
REMINDERS_KEY = "reminders"

M = TypeVar("M", bound=CamelModel)


class DocumentStore:
    """Handle on one named JSON document. Open before use, close when done."""

    def __init__(self, name: str, engine: Engine) -> None:
        self.name = name
        self.engine = engine
        self._session_factory: Optional[sessionmaker] = None

    @property
    def is_open(self) -> bool:
        return self._session_factory is not None

    def open(self) -> "DocumentStore":
        if self._session_factory is None:
            init_db(self.engine)
            self._session_factory = make_session_factory(self.engine)
            logger.debug("Opened document store %r", self.name)
        return self

    def close(self) -> None:
        self._session_factory = None

    async def __aenter__(self) -> "DocumentStore":
        return self.open()

    async def __aexit__(self, *exc_info: Any) -> None:
        self.close()

    def _factory(self) -> sessionmaker:
        if self._session_factory is None:
            raise StorageError(f"Document store {self.name!r} is not open")
        return self._session_factory

    def _read_sync(self) -> dict[str, Any]:
        factory = self._factory()
        try:
            with factory() as db:
                row = db.get(Document, self.name)
                raw = row.content_json if row else None
        except SQLAlchemyError as e:
            logger.warning("Reading document %r failed, using empty document: %s", self.name, e)
            return {}

        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Document %r is corrupt, using empty document", self.name)
            return {}
        if not isinstance(data, dict):
            logger.warning("Document %r is not an object, using empty document", self.name)
            return {}
        return data

    def _write_sync(self, doc: dict[str, Any]) -> None:
        factory = self._factory()
        try:
            content = json.dumps(doc, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Document {self.name!r} is not serializable: {e}") from e

        try:
            with factory() as db:
                db.merge(Document(name=self.name, content_json=content, updated_at=utcnow()))
                db.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Writing document {self.name!r} failed: {e}") from e

    async def read(self) -> dict[str, Any]:
        """Whole document; empty on absence or corruption."""
        return await asyncio.to_thread(self._read_sync)

    async def write(self, doc: dict[str, Any]) -> None:
        """Replace the whole document. Raises StorageError on failure."""
        await asyncio.to_thread(self._write_sync, doc)

    async def get(self, key: str, default: Any = None) -> Any:
        doc = await self.read()
        return doc.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        doc = await self.read()
        doc[key] = value
        await self.write(doc)


class _Collection(Generic[M]):
    """An ordered list of records stored under one key of a document."""

    key: str
    model: type[M]

    def __init__(self, document: DocumentStore) -> None:
        self.document = document

    def _parse(self, raw: Any) -> Optional[M]:
        try:
            return self.model.model_validate(raw)
        except ValidationError as e:
            logger.warning("Skipping invalid %s record: %s", self.key, e.errors()[:1])
            return None

    @staticmethod
    def _raw_items(doc: dict[str, Any], key: str) -> list[Any]:
        items = doc.get(key)
        return items if isinstance(items, list) else []

    async def _items(self) -> list[M]:
        doc = await self.document.read()
        parsed = (self._parse(raw) for raw in self._raw_items(doc, self.key))
        return [m for m in parsed if m is not None]

    def _check_unique(self, items: list[Any], record: M) -> list[Any]:
        """Items to write `record` into; raises on a conflicting record."""
        return items

    async def upsert(self, record: M) -> M:
        """Insert at the front, or replace in place when the id exists."""
        doc = await self.document.read()
        items = self._raw_items(doc, self.key)
        rid = getattr(record, "id")

        items = self._check_unique(items, record)
        index = next(
            (i for i, raw in enumerate(items) if isinstance(raw, dict) and raw.get("id") == rid),
            None,
        )

        if index is None:
            items.insert(0, record.to_document())
        else:
            items[index] = record.to_document()

        doc[self.key] = items
        await self.document.write(doc)
        return record

    async def delete(self, record_id: str) -> bool:
        doc = await self.document.read()
        items = self._raw_items(doc, self.key)
        kept = [raw for raw in items if not (isinstance(raw, dict) and raw.get("id") == record_id)]
        if len(kept) == len(items):
            return False

        doc[self.key] = kept
        await self.document.write(doc)
        return True

    async def get(self, record_id: str) -> Optional[M]:
        for item in await self._items():
            if getattr(item, "id") == record_id:
                return item
        return None


class SessionStore(_Collection[VideoSession]):
    key = SESSIONS_KEY
    model = VideoSession

    def _check_unique(self, items: list[Any], record: VideoSession) -> list[Any]:
        # an unreadable record for the same video is invisible to reads, so it gets replaced
        kept: list[Any] = []
        for raw in items:
            if isinstance(raw, dict) and raw.get("videoId") == record.video_id and raw.get("id") != record.id:
                if self._parse(raw) is not None:
                    raise DuplicateVideoError(record.video_id)
                logger.warning("Dropping unreadable session record for video %s", record.video_id)
                continue
            kept.append(raw)
        return kept

    async def list(self) -> list[VideoSession]:
        return await self._items()

    async def get_by_id(self, session_id: str) -> Optional[VideoSession]:
        return await self.get(session_id)

    async def get_by_video_id(self, video_id: str) -> Optional[VideoSession]:
        for s in await self._items():
            if s.video_id == video_id:
                return s
        return None

    async def get_or_create(
        self,
        video_id: str,
        factory: Callable[[], Union[VideoSession, Awaitable[VideoSession]]],
    ) -> tuple[VideoSession, bool]:
        """Existing session for `video_id`, or a new one built by `factory`.

        Returns (session, created).
        """
        existing = await self.get_by_video_id(video_id)
        if existing is not None:
            return existing, False

        session = factory()
        if inspect.isawaitable(session):
            session = await session
        if session.video_id != video_id:
            raise ValueError(f"factory built a session for {session.video_id}, expected {video_id}")

        await self.upsert(session)
        logger.info("Created video session %s for video %s", session.id, video_id)
        return session, True


class ChatStore(_Collection[ChatSession]):
    key = CHATS_KEY
    model = ChatSession

    async def list(self, video_session_id: Optional[str] = None) -> list[ChatSession]:
        """Most recently updated first."""
        chats = await self._items()
        if video_session_id is not None:
            chats = [c for c in chats if c.video_session_id == video_session_id]
        return sorted(chats, key=lambda c: c.updated_at, reverse=True)

    async def delete_for_video_session(self, video_session_id: str) -> int:
        doc = await self.document.read()
        items = self._raw_items(doc, self.key)
        kept = [
            raw
            for raw in items
            if not (isinstance(raw, dict) and raw.get("videoSessionId") == video_session_id)
        ]
        removed = len(items) - len(kept)
        if removed:
            doc[self.key] = kept
            await self.document.write(doc)
        return removed


class SettingsStore:
    def __init__(self, document: DocumentStore) -> None:
        self.document = document

    async def get(self) -> AppSettings:
        """Stored values over defaults; defaults when missing or invalid."""
        stored = await self.document.get(SETTINGS_KEY)
        if not isinstance(stored, dict):
            return AppSettings()
        try:
            return AppSettings.model_validate(stored)
        except ValidationError as e:
            logger.warning("Stored settings are invalid, using defaults: %s", e.errors()[:1])
            return AppSettings()

    async def save(self, app_settings: AppSettings) -> None:
        await self.document.set(SETTINGS_KEY, app_settings.to_document())

    async def api_key(self, provider: AIProvider) -> str:
        return (await self.get()).api_key_for(provider)
