from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.context import RequestContext
from app.core.security import require_owner_id
from app.db.pg.session import SessionLocal


def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_settings_dep() -> Settings:
    return get_settings()


def get_context(
    owner_id: str = Depends(require_owner_id),
    db: Session = Depends(get_db),
) -> RequestContext:
    return RequestContext(owner_id=owner_id, db=db)
