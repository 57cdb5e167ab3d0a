"""Typed records tracked by the conference tracker."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

QUESTION_TYPES = ("yes/no", "short")


class SyncState(str, Enum):
    """Whether a local record still has changes to push."""

    DIRTY = "dirty"
    CLEAN = "clean"


def new_record_id() -> str:
    return str(uuid.uuid4())


def parse_timestamp(value: Any) -> datetime | None:
    """Return a UTC ``datetime`` for ISO strings, epoch milliseconds or datetimes."""

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    elif isinstance(value, bool):
        return None
    elif isinstance(value, int | float):
        return datetime.fromtimestamp(float(value) / 1000, tz=UTC)
    else:
        try:
            ts = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
        except ValueError:
            return None
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(UTC).isoformat().replace("+00:00", "Z")


def _text(payload: Mapping[str, Any], key: str, default: str = "") -> str:
    value = payload.get(key)
    return default if value is None else str(value)


def _optional_text(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(slots=True)
class BoothQuestion:
    """A question asked (or to ask) at a booth."""

    id: str
    question: str = ""
    answer: str = ""
    type: str = "short"

    def __post_init__(self) -> None:
        if self.type not in QUESTION_TYPES:
            raise ValueError(f"unsupported question type: {self.type}")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "question": self.question, "answer": self.answer, "type": self.type}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> BoothQuestion:
        qtype = str(payload.get("type") or "short")
        if qtype not in QUESTION_TYPES:
            qtype = "short"
        return cls(
            id=str(payload.get("id") or new_record_id()),
            question=_text(payload, "question"),
            answer=_text(payload, "answer"),
            type=qtype,
        )


@dataclass(slots=True)
class Session:
    """A conference session the user attended."""

    id: str
    title: str = ""
    speaker: str = ""
    notes: str = ""
    tags: list[str] = field(default_factory=list)
    date: datetime | None = None
    audio: bytes | None = None
    sync_state: SyncState = SyncState.DIRTY
    updated_at: datetime | None = None

    @classmethod
    def new(cls, title: str, **fields: Any) -> Session:
        return cls(id=new_record_id(), title=title, **fields)

    def payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "speaker": self.speaker,
            "notes": self.notes,
            "tags": list(self.tags),
            "date": format_timestamp(self.date),
        }

    @classmethod
    def from_payload(cls, record_id: str, payload: Mapping[str, Any], **extra: Any) -> Session:
        tags_raw = payload.get("tags")
        tags = [str(tag) for tag in tags_raw if tag] if isinstance(tags_raw, list | tuple) else []
        return cls(
            id=record_id,
            title=_text(payload, "title"),
            speaker=_text(payload, "speaker"),
            notes=_text(payload, "notes"),
            tags=tags,
            date=parse_timestamp(payload.get("date")),
            **extra,
        )


@dataclass(slots=True)
class Booth:
    """A company booth visited on the expo floor."""

    id: str
    company: str = ""
    rep_name: str = ""
    notes: str = ""
    applied: bool = False
    deadline: datetime | None = None
    questions: list[BoothQuestion] = field(default_factory=list)
    sync_state: SyncState = SyncState.DIRTY
    updated_at: datetime | None = None

    @classmethod
    def new(cls, company: str, **fields: Any) -> Booth:
        return cls(id=new_record_id(), company=company, **fields)

    def payload(self) -> dict[str, Any]:
        return {
            "company": self.company,
            "rep_name": self.rep_name,
            "notes": self.notes,
            "applied": self.applied,
            "deadline": format_timestamp(self.deadline),
            "questions": [question.to_dict() for question in self.questions],
        }

    @classmethod
    def from_payload(cls, record_id: str, payload: Mapping[str, Any], **extra: Any) -> Booth:
        questions_raw = payload.get("questions")
        questions = (
            [BoothQuestion.from_dict(item) for item in questions_raw if isinstance(item, Mapping)]
            if isinstance(questions_raw, list | tuple)
            else []
        )
        return cls(
            id=record_id,
            company=_text(payload, "company"),
            rep_name=_text(payload, "rep_name"),
            notes=_text(payload, "notes"),
            applied=bool(payload.get("applied")),
            deadline=parse_timestamp(payload.get("deadline")),
            questions=questions,
            **extra,
        )


@dataclass(slots=True)
class Connection:
    """A person met at the conference."""

    id: str
    name: str = ""
    role: str = ""
    company: str = ""
    phone: str | None = None
    email: str | None = None
    website: str | None = None
    linkedin: str | None = None
    notes: str = ""
    audio: bytes | None = None
    sync_state: SyncState = SyncState.DIRTY
    updated_at: datetime | None = None

    @classmethod
    def new(cls, name: str, **fields: Any) -> Connection:
        return cls(id=new_record_id(), name=name, **fields)

    def payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role,
            "company": self.company,
            "phone": self.phone,
            "email": self.email,
            "website": self.website,
            "linkedin": self.linkedin,
            "notes": self.notes,
        }

    @classmethod
    def from_payload(cls, record_id: str, payload: Mapping[str, Any], **extra: Any) -> Connection:
        return cls(
            id=record_id,
            name=_text(payload, "name", "Unknown"),
            role=_text(payload, "role"),
            company=_text(payload, "company"),
            phone=_optional_text(payload, "phone"),
            email=_optional_text(payload, "email"),
            website=_optional_text(payload, "website"),
            linkedin=_optional_text(payload, "linkedin"),
            notes=_text(payload, "notes"),
            **extra,
        )


Record = Session | Booth | Connection

__all__ = [
    "EPOCH",
    "Booth",
    "BoothQuestion",
    "Connection",
    "Record",
    "Session",
    "SyncState",
    "format_timestamp",
    "new_record_id",
    "parse_timestamp",
]
