"""Persistent storage for contacts captured at the end of a dialogue."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, List, Protocol

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import Column, DateTime, Integer, String, create_engine, func, select
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .config import Settings, ensure_data_directory

logger = logging.getLogger("chatflow.store")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Contact(BaseModel):
    """A contact as stored by a sink."""

    id: int
    name: str
    phone: str
    created_at: datetime = Field(default_factory=_utcnow)


class ContactStoreError(RuntimeError):
    """Storage failed; the message is safe to show to clients."""

    def __init__(self, message: str = "Could not save contact") -> None:
        super().__init__(message)


class ContactSink(Protocol):
    kind: str

    def save(self, name: str, phone: str) -> Contact: ...

    def list_contacts(self) -> List[Contact]: ...

    def close(self) -> None: ...


def _newest_first(contacts: List[Contact]) -> List[Contact]:
    return sorted(contacts, key=lambda c: (c.created_at, c.id), reverse=True)


class JsonContactStore:
    """Embedded JSON-backed contact store."""

    kind = "json"

    def __init__(self, path: Path):
        self._path = path
        self._lock = Lock()
        self._contacts: Dict[int, Contact] = {}
        self._load()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            data = json.loads(self._path.read_text("utf-8"))
            records = [Contact.model_validate(item) for item in data]
        except (OSError, TypeError, json.JSONDecodeError, ValidationError) as exc:
            logger.error("Contact file %s is unreadable, starting empty: %s", self._path, exc)
            records = []
        for record in records:
            self._contacts[record.id] = record

    def _save(self) -> None:
        payload = [record.model_dump(mode="json") for record in self._contacts.values()]
        ensure_data_directory(self._path)
        fd, tmp_name = tempfile.mkstemp(dir=self._path.parent, prefix=".contacts-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2)
            os.replace(tmp_name, self._path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def save(self, name: str, phone: str) -> Contact:
        with self._lock:
            contact_id = max(self._contacts, default=0) + 1
            record = Contact(id=contact_id, name=name, phone=phone)
            self._contacts[contact_id] = record
            try:
                self._save()
            except OSError as exc:
                del self._contacts[contact_id]
                raise ContactStoreError() from exc
            return record

    def list_contacts(self) -> List[Contact]:
        with self._lock:
            return _newest_first(list(self._contacts.values()))

    def close(self) -> None:
        return None


Base = declarative_base()


class ContactRow(Base):
    __tablename__ = "contacts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    phone = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, server_default=func.now(), nullable=False)


def _engine_for(url: str, pool_size: int):
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database in (None, "", ":memory:"):
            return create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            pool_size=pool_size,
            max_overflow=0,
        )
    # Callers beyond pool_size wait for a free connection instead of failing fast.
    return create_engine(url, pool_pre_ping=True, pool_size=pool_size, max_overflow=0)


class SqlContactStore:
    """Relational contact store backed by SQLAlchemy."""

    kind = "sql"

    def __init__(self, url: str, pool_size: int = 10):
        self._engine = _engine_for(url, pool_size)
        self._session_factory = sessionmaker(
            bind=self._engine, autoflush=False, expire_on_commit=False
        )
        self.init()

    def init(self) -> None:
        """Create the contacts table if it doesn't exist."""
        try:
            Base.metadata.create_all(bind=self._engine)
        except SQLAlchemyError as exc:
            logger.error("Could not create contacts table: %s", exc)
        else:
            logger.info("Contacts table ready")

    @staticmethod
    def _to_contact(row: ContactRow) -> Contact:
        created_at = row.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return Contact(id=row.id, name=row.name, phone=row.phone, created_at=created_at)

    def save(self, name: str, phone: str) -> Contact:
        try:
            with self._session_factory() as db:
                row = ContactRow(name=name, phone=phone, created_at=_utcnow())
                db.add(row)
                db.commit()
                return self._to_contact(row)
        except SQLAlchemyError as exc:
            raise ContactStoreError() from exc

    def list_contacts(self) -> List[Contact]:
        try:
            with self._session_factory() as db:
                rows = db.scalars(
                    select(ContactRow).order_by(ContactRow.created_at.desc(), ContactRow.id.desc())
                ).all()
                return [self._to_contact(row) for row in rows]
        except SQLAlchemyError as exc:
            raise ContactStoreError("Could not load contacts") from exc

    def close(self) -> None:
        self._engine.dispose()


class UnavailableContactStore:
    """Stand-in used when the configured database cannot be set up; every call fails."""

    kind = "unavailable"

    def save(self, name: str, phone: str) -> Contact:
        raise ContactStoreError()

    def list_contacts(self) -> List[Contact]:
        raise ContactStoreError("Could not load contacts")

    def close(self) -> None:
        return None


def build_contact_store(settings: Settings) -> ContactSink:
    if settings.database_enabled:
        logger.info("Using relational contact store")
        try:
            return SqlContactStore(settings.database_url or "", pool_size=settings.db_pool_size)
        except (SQLAlchemyError, ImportError, ValueError) as exc:
            # Bad URL or missing DB driver: keep serving the dialogue, fail contact calls.
            logger.error("Contact database unavailable: %s", exc)
            return UnavailableContactStore()
    logger.info("Using JSON contact store at %s", settings.contacts_path)
    return JsonContactStore(settings.contacts_path)
