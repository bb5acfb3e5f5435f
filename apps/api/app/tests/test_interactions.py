from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from app.core.context import RequestContext, as_utc
from app.core.errors import NotFoundError, ValidationError
from app.db.pg.base import Base
from app.db.pg.models import Contact, Interaction
from app.db.pg.session import SessionLocal, engine
from app.services.contacts_registry.activity import add_note, add_social_message
from app.services.contacts_registry.registry import ContactDraft, create_contact, soft_delete_contact
from app.services.interactions import recorder
from app.services.interactions.recorder import participant_ids, record_interaction, soft_delete_interaction

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def reset_db() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _contact(ctx: RequestContext, name: str, days_ago: int = 10, strength: float = 5.0) -> str:
    view = create_contact(
        ctx,
        ContactDraft(
            first_name=name,
            email=f"{name.lower()}@example.com",
            relationship_strength=strength,
            last_contact_date=NOW - timedelta(days=days_ago),
        ),
    )
    return view.contact.contact_id


def test_meeting_boosts_every_participant_and_moves_last_contact() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        ada = _contact(ctx, "Ada")
        bob = _contact(ctx, "Bob", strength=9.5)

        interaction = record_interaction(
            ctx,
            contact_ids=[ada, bob, ada],
            interaction_type="meeting",
            direction="outbound",
            subject="  Planning  ",
        )

        assert interaction.subject == "Planning"
        assert participant_ids(ctx, interaction.interaction_id) == sorted([ada, bob])
        assert db.get(Contact, ada).relationship_strength == pytest.approx(6.5)
        assert db.get(Contact, bob).relationship_strength == 10.0
        assert as_utc(db.get(Contact, ada).last_contact_date) == NOW
    finally:
        db.close()


def test_backdated_interaction_keeps_latest_contact_date() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        ada = _contact(ctx, "Ada", days_ago=2)

        record_interaction(ctx, contact_ids=[ada], interaction_type="email", occurred_at=NOW - timedelta(days=5))

        contact = db.get(Contact, ada)
        assert as_utc(contact.last_contact_date) == NOW - timedelta(days=2)
        assert contact.relationship_strength == pytest.approx(5.5)
    finally:
        db.close()


def test_external_id_makes_recording_idempotent() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        ada = _contact(ctx, "Ada")

        first = record_interaction(
            ctx, contact_ids=[ada], interaction_type="email", source="gmail", external_id="msg-1"
        )
        second = record_interaction(
            ctx, contact_ids=[ada], interaction_type="email", source="gmail", external_id="msg-1"
        )

        assert first.interaction_id == second.interaction_id
        assert db.get(Contact, ada).relationship_strength == pytest.approx(5.5)
    finally:
        db.close()


def test_racing_deliveries_of_one_message_boost_once(monkeypatch) -> None:
    reset_db()
    first = SessionLocal()
    second = SessionLocal()
    try:
        ctx_a = RequestContext(owner_id="owner-1", db=first, now=NOW)
        ctx_b = RequestContext(owner_id="owner-1", db=second, now=NOW)
        ada = _contact(ctx_a, "Ada")

        lookup = recorder._existing_external
        calls: list[str | None] = []

        def lookup_before_first_commit(ctx, source, external_id):
            # The second delivery checked for the message before the first one committed.
            calls.append(external_id)
            if len(calls) == 1:
                return None
            return lookup(ctx, source, external_id)

        recorded = record_interaction(
            ctx_a, contact_ids=[ada], interaction_type="email", source="gmail", external_id="msg-7"
        )
        monkeypatch.setattr(recorder, "_existing_external", lookup_before_first_commit)
        duplicate = record_interaction(
            ctx_b, contact_ids=[ada], interaction_type="email", source="gmail", external_id="msg-7"
        )

        assert duplicate.interaction_id == recorded.interaction_id
        assert len(calls) == 2
        count = second.scalar(select(func.count()).select_from(Interaction).where(Interaction.external_id == "msg-7"))
        assert count == 1
        assert second.get(Contact, ada).relationship_strength == pytest.approx(5.5)
    finally:
        first.close()
        second.close()


def test_external_id_can_be_reused_after_soft_delete() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        ada = _contact(ctx, "Ada")

        original = record_interaction(
            ctx, contact_ids=[ada], interaction_type="call", source="dialer", external_id="call-1"
        )
        soft_delete_interaction(ctx, original.interaction_id)
        again = record_interaction(
            ctx, contact_ids=[ada], interaction_type="call", source="dialer", external_id="call-1"
        )

        assert again.interaction_id != original.interaction_id
    finally:
        db.close()


def test_invalid_interactions_are_rejected_without_side_effects() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        ada = _contact(ctx, "Ada")

        with pytest.raises(ValidationError):
            record_interaction(ctx, contact_ids=[ada], interaction_type="fax")
        with pytest.raises(ValidationError):
            record_interaction(ctx, contact_ids=[], interaction_type="call")
        with pytest.raises(ValidationError):
            record_interaction(ctx, contact_ids=[ada], interaction_type="call", occurred_at=NOW + timedelta(minutes=5))
        with pytest.raises(ValidationError):
            record_interaction(ctx, contact_ids=[ada], interaction_type="call", sentiment=2.0)
        with pytest.raises(NotFoundError):
            record_interaction(ctx, contact_ids=[ada, "missing"], interaction_type="call")
        db.rollback()

        assert db.scalar(select(func.count()).select_from(Interaction)) == 0
        assert db.get(Contact, ada).relationship_strength == 5.0
    finally:
        db.close()


def test_deleted_or_foreign_contacts_cannot_participate() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        gone = _contact(ctx, "Gone")
        soft_delete_contact(ctx, gone)
        foreign = _contact(RequestContext(owner_id="owner-2", db=db, now=NOW), "Foreign")

        with pytest.raises(NotFoundError):
            record_interaction(ctx, contact_ids=[gone], interaction_type="call")
        with pytest.raises(NotFoundError):
            record_interaction(ctx, contact_ids=[foreign], interaction_type="call")
    finally:
        db.close()


def test_soft_delete_interaction_leaves_strength_untouched() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        ada = _contact(ctx, "Ada")
        interaction = record_interaction(ctx, contact_ids=[ada], interaction_type="call")

        soft_delete_interaction(ctx, interaction.interaction_id)

        assert db.get(Interaction, interaction.interaction_id).deleted_at is not None
        assert db.get(Contact, ada).relationship_strength == pytest.approx(6.0)
        with pytest.raises(NotFoundError):
            soft_delete_interaction(RequestContext(owner_id="owner-2", db=db, now=NOW), interaction.interaction_id)
    finally:
        db.close()


def test_notes_and_social_messages_do_not_boost_strength() -> None:
    reset_db()
    db = SessionLocal()
    try:
        ctx = RequestContext(owner_id="owner-1", db=db, now=NOW)
        ada = _contact(ctx, "Ada")

        note = add_note(ctx, ada, "  Met at the conference  ", is_pinned=True)
        message = add_social_message(ctx, ada, channel="linkedin_message", title="Hello", direction="inbound")

        assert note.content == "Met at the conference"
        assert message.channel == "linkedin_message"
        contact = db.get(Contact, ada)
        assert contact.relationship_strength == 5.0
        assert as_utc(contact.last_contact_date) == NOW - timedelta(days=10)
        with pytest.raises(ValidationError):
            add_note(ctx, ada, "   ")
        with pytest.raises(ValidationError):
            add_social_message(ctx, ada, channel="myspace", title="Hi")
    finally:
        db.close()
