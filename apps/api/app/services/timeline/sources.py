from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import Select, and_, exists, func, or_, select
from sqlalchemy.orm import InstrumentedAttribute, Session

from app.core.context import as_utc
from app.core.types import InteractionType, TimelineEventType
from app.db.pg.models import Contact, Interaction, InteractionParticipant, Note, SocialMessage

_HTML_TAG = re.compile(r"<[^>]*>")


@dataclass(frozen=True)
class TimelineEvent:
    event_id: str
    event_type: TimelineEventType
    occurred_at: datetime
    title: str
    snippet: str | None
    direction: str | None
    source: str
    contact_ids: tuple[str, ...]
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.occurred_at, self.event_id)


@dataclass(frozen=True)
class SourceQuery:
    owner_id: str
    event_types: frozenset[TimelineEventType]
    limit: int
    search: str | None = None
    contact_id: str | None = None
    before: tuple[datetime, str] | None = None


class TimelineSource(Protocol):
    name: str
    event_types: frozenset[TimelineEventType]

    def fetch(self, db: Session, query: SourceQuery) -> list[TimelineEvent]: ...

    def approximate_count(self, db: Session, query: SourceQuery) -> int: ...


def truncate_text(text: str | None, max_chars: int) -> str | None:
    if not text:
        return None
    plain = _HTML_TAG.sub("", text).strip()
    if len(plain) <= max_chars:
        return plain
    return plain[:max_chars] + "..."


def before_boundary(
    occurred_col: InstrumentedAttribute,
    id_col: InstrumentedAttribute,
    before: tuple[datetime, str] | None,
):
    """Strictly-after predicate for a descending `(occurred_at, id)` walk."""
    if before is None:
        return None
    occurred_at, event_id = before
    return or_(occurred_col < occurred_at, and_(occurred_col == occurred_at, id_col < event_id))


def _finish(stmt: Select, occurred_col, id_col, query: SourceQuery) -> Select:
    boundary = before_boundary(occurred_col, id_col, query.before)
    if boundary is not None:
        stmt = stmt.where(boundary)
    return stmt.order_by(occurred_col.desc(), id_col.desc()).limit(query.limit)


def _count(db: Session, stmt: Select) -> int:
    return int(db.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0)


_INTERACTION_EVENT_TYPES = {
    InteractionType.EMAIL: TimelineEventType.EMAIL,
    InteractionType.MEETING: TimelineEventType.MEETING,
    InteractionType.CALL: TimelineEventType.CALL,
    InteractionType.LINKEDIN: TimelineEventType.LINKEDIN_MESSAGE,
    InteractionType.WHATSAPP: TimelineEventType.WHATSAPP,
    InteractionType.OTHER: TimelineEventType.OTHER,
}


class InteractionSource:
    name = "interactions"
    event_types = frozenset(_INTERACTION_EVENT_TYPES.values())

    def __init__(self, snippet_chars: int = 200) -> None:
        self.snippet_chars = snippet_chars

    def _base(self, query: SourceQuery) -> Select:
        wanted = [
            kind.value for kind, event_type in _INTERACTION_EVENT_TYPES.items() if event_type in query.event_types
        ]
        live_participant = (
            select(InteractionParticipant.interaction_id)
            .join(Contact, Contact.contact_id == InteractionParticipant.contact_id)
            .where(
                InteractionParticipant.interaction_id == Interaction.interaction_id,
                Contact.deleted_at.is_(None),
            )
        )
        if query.contact_id:
            live_participant = live_participant.where(InteractionParticipant.contact_id == query.contact_id)
        stmt = select(Interaction).where(
            Interaction.owner_id == query.owner_id,
            Interaction.deleted_at.is_(None),
            Interaction.type.in_(wanted),
            exists(live_participant),
        )
        if query.search:
            stmt = stmt.where(
                or_(
                    Interaction.subject.icontains(query.search, autoescape=True),
                    Interaction.summary.icontains(query.search, autoescape=True),
                )
            )
        return stmt

    def _participants(self, db: Session, interaction_ids: list[str]) -> dict[str, tuple[str, ...]]:
        if not interaction_ids:
            return {}
        rows = db.execute(
            select(InteractionParticipant.interaction_id, InteractionParticipant.contact_id)
            .where(InteractionParticipant.interaction_id.in_(interaction_ids))
            .order_by(InteractionParticipant.contact_id)
        ).all()
        grouped: dict[str, list[str]] = {}
        for interaction_id, contact_id in rows:
            grouped.setdefault(interaction_id, []).append(contact_id)
        return {key: tuple(value) for key, value in grouped.items()}

    def fetch(self, db: Session, query: SourceQuery) -> list[TimelineEvent]:
        stmt = _finish(self._base(query), Interaction.occurred_at, Interaction.interaction_id, query)
        interactions = db.scalars(stmt).all()
        participants = self._participants(db, [item.interaction_id for item in interactions])
        events = []
        for item in interactions:
            kind = InteractionType(item.type)
            metadata = dict(item.metadata_json or {})
            if item.external_id:
                metadata["external_id"] = item.external_id
            if item.sentiment is not None:
                metadata["sentiment"] = item.sentiment
            events.append(
                TimelineEvent(
                    event_id=item.interaction_id,
                    event_type=_INTERACTION_EVENT_TYPES[kind],
                    occurred_at=as_utc(item.occurred_at),
                    title=item.subject or kind.value.capitalize(),
                    snippet=truncate_text(item.summary, self.snippet_chars),
                    direction=item.direction,
                    source=item.source,
                    contact_ids=participants.get(item.interaction_id, ()),
                    metadata=metadata,
                )
            )
        return events

    def approximate_count(self, db: Session, query: SourceQuery) -> int:
        return _count(db, self._base(query))


class NoteSource:
    name = "notes"
    event_types = frozenset({TimelineEventType.NOTE})

    def __init__(self, snippet_chars: int = 200) -> None:
        self.snippet_chars = snippet_chars

    def _base(self, query: SourceQuery) -> Select:
        stmt = (
            select(Note)
            .join(Contact, Contact.contact_id == Note.contact_id)
            .where(Note.owner_id == query.owner_id, Note.deleted_at.is_(None), Contact.deleted_at.is_(None))
        )
        if query.contact_id:
            stmt = stmt.where(Note.contact_id == query.contact_id)
        if query.search:
            stmt = stmt.where(Note.content.icontains(query.search, autoescape=True))
        return stmt

    def fetch(self, db: Session, query: SourceQuery) -> list[TimelineEvent]:
        notes = db.scalars(_finish(self._base(query), Note.occurred_at, Note.note_id, query)).all()
        return [
            TimelineEvent(
                event_id=note.note_id,
                event_type=TimelineEventType.NOTE,
                occurred_at=as_utc(note.occurred_at),
                title="Note",
                snippet=truncate_text(note.content, self.snippet_chars),
                direction=None,
                source="manual",
                contact_ids=(note.contact_id,),
                metadata={"is_pinned": note.is_pinned},
            )
            for note in notes
        ]

    def approximate_count(self, db: Session, query: SourceQuery) -> int:
        return _count(db, self._base(query))


class SocialMessageSource:
    name = "social_messages"
    event_types = frozenset(
        {
            TimelineEventType.LINKEDIN_MESSAGE,
            TimelineEventType.LINKEDIN_CONNECTION,
            TimelineEventType.WHATSAPP,
            TimelineEventType.OTHER,
        }
    )

    def __init__(self, snippet_chars: int = 200) -> None:
        self.snippet_chars = snippet_chars

    def _base(self, query: SourceQuery) -> Select:
        channels = [event_type.value for event_type in self.event_types & query.event_types]
        stmt = (
            select(SocialMessage)
            .join(Contact, Contact.contact_id == SocialMessage.contact_id)
            .where(
                SocialMessage.owner_id == query.owner_id,
                SocialMessage.deleted_at.is_(None),
                SocialMessage.channel.in_(channels),
                Contact.deleted_at.is_(None),
            )
        )
        if query.contact_id:
            stmt = stmt.where(SocialMessage.contact_id == query.contact_id)
        if query.search:
            stmt = stmt.where(
                or_(
                    SocialMessage.title.icontains(query.search, autoescape=True),
                    SocialMessage.body.icontains(query.search, autoescape=True),
                )
            )
        return stmt

    def fetch(self, db: Session, query: SourceQuery) -> list[TimelineEvent]:
        stmt = _finish(self._base(query), SocialMessage.occurred_at, SocialMessage.message_id, query)
        return [
            TimelineEvent(
                event_id=message.message_id,
                event_type=TimelineEventType(message.channel),
                occurred_at=as_utc(message.occurred_at),
                title=message.title,
                snippet=truncate_text(message.body, self.snippet_chars),
                direction=message.direction,
                source=message.channel,
                contact_ids=(message.contact_id,),
                metadata=dict(message.metadata_json or {}),
            )
            for message in db.scalars(stmt).all()
        ]

    def approximate_count(self, db: Session, query: SourceQuery) -> int:
        return _count(db, self._base(query))


def default_sources(snippet_chars: int = 200) -> list[TimelineSource]:
    return [InteractionSource(snippet_chars), NoteSource(snippet_chars), SocialMessageSource(snippet_chars)]
