"""Mission session lifecycle helpers."""

import uuid

from sqlalchemy.orm import Session

from twinlink.services import models
from twinlink.services.missions import suggested_options

STATUSES = ("active", "completed", "expired")

# active is the only status that can change, and only forward
ALLOWED_TRANSITIONS = {
    "active": {"completed", "expired"},
    "completed": set(),
    "expired": set(),
}


class InvalidTransition(Exception):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move session from {current} to {requested}")


def new_link_token() -> str:
    return uuid.uuid4().hex


def share_path(token: str) -> str:
    return f"/s/{token}"


def transition_status(session: models.MissionSession, new_status: str) -> bool:
    """Apply a status change in place.

    Returns False when the session already has ``new_status`` (no-op).
    Raises :class:`InvalidTransition` for backward or unknown moves.
    """
    if new_status not in STATUSES:
        raise InvalidTransition(session.status, new_status)
    if session.status == new_status:
        return False
    if new_status not in ALLOWED_TRANSITIONS.get(session.status, set()):
        raise InvalidTransition(session.status, new_status)
    session.status = new_status
    if new_status == "completed":
        session.completed_at = models.utcnow()
    return True


def append_message(
    db: Session,
    session_id: str,
    role: str,
    content: str,
    options=None,
) -> models.ChatMessage:
    msg = models.ChatMessage(
        session_id=session_id,
        role=role,
        content=content,
        suggested_options=options,
    )
    db.add(msg)
    db.commit()
    db.refresh(msg)
    return msg


def seed_greeting(db: Session, session: models.MissionSession, character: models.Character):
    """Open the conversation with the character's greeting, if it has one."""
    greeting = (character.v3_data or {}).get("first_mes")
    if not greeting:
        return None
    mission_type = (session.mission or {}).get("mission_type", "")
    return append_message(db, session.id, "assistant", greeting, suggested_options(mission_type))


def history_for_prompt(db: Session, session_id: str):
    """Persisted turns of a session as ``{role, content}`` pairs, oldest first."""
    messages = (
        db.query(models.ChatMessage)
        .filter(models.ChatMessage.session_id == session_id)
        .order_by(models.ChatMessage.created_at)
        .all()
    )
    return [
        {"role": m.role, "content": m.content}
        for m in messages
        if m.role in ("user", "assistant")
    ]
