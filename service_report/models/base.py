from __future__ import annotations
from datetime import datetime, timezone
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value):
    return value.isoformat() if value is not None else None


def public_upload_url(relative_path: str | None):
    """Render a path stored relative to the upload root as its /uploads URL."""
    if not relative_path:
        return None
    return '/uploads/' + relative_path.replace('\\', '/').lstrip('/')
