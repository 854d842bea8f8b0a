import logging
from typing import List, Optional, Tuple

from db import ProgressRepository, SessionRepository
from errors import ForbiddenError
from models import CatalogEntry, Difficulty, Owner, ProgressRecord, SessionType
from schemas import SessionCreate, SessionUpdate, parse

logger = logging.getLogger(__name__)

# matches no stored row, so an unknown filter value yields an empty list
_NO_MATCH = "\x00"


def _normalise_type(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return SessionType(value).value
    except ValueError:
        return _NO_MATCH


def _normalise_difficulty(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return Difficulty(value).value
    except ValueError:
        return _NO_MATCH


class SessionCatalogService:
    """Ownership-aware access to prebuilt and custom sessions."""

    def __init__(
        self, sessions: SessionRepository, progress: ProgressRepository
    ) -> None:
        self.sessions = sessions
        self.progress = progress

    def list_prebuilt(
        self,
        title: Optional[str] = None,
        session_type: Optional[str] = None,
        difficulty: Optional[str] = None,
    ) -> List[CatalogEntry]:
        return self.sessions.fetch_prebuilt(
            title,
            _normalise_type(session_type),
            _normalise_difficulty(difficulty),
        )

    def list_for_user(
        self,
        user_id: int,
        title: Optional[str] = None,
        session_type: Optional[str] = None,
        difficulty: Optional[str] = None,
        favorite: Optional[bool] = None,
    ) -> List[Tuple[CatalogEntry, ProgressRecord]]:
        return self.progress.fetch_for_user(
            user_id,
            title,
            _normalise_type(session_type),
            _normalise_difficulty(difficulty),
            favorite,
        )

    def get(self, session_id: int) -> CatalogEntry:
        return self.sessions.fetch(session_id)

    def create(
        self, user_id: int, data: dict, image: Optional[str] = None
    ) -> CatalogEntry:
        fields = parse(SessionCreate, data)
        session_id = self.sessions.add(
            fields.title,
            fields.type.value,
            fields.difficulty.value,
            fields.duration,
            fields.intensity,
            fields.description,
            image,
            Owner(user_id),
        )
        logger.info("user %s created session %s", user_id, session_id)
        return self.sessions.fetch(session_id)

    def _owned(self, user_id: int, session_id: int, action: str) -> CatalogEntry:
        entry = self.sessions.fetch(session_id)
        if not entry.owner.is_user(user_id):
            logger.warning(
                "user %s tried to %s session %s", user_id, action, session_id
            )
            raise ForbiddenError(f"Unauthorized to {action} this session")
        return entry

    def update(self, user_id: int, session_id: int, data: dict) -> CatalogEntry:
        self._owned(user_id, session_id, "edit")
        fields = parse(SessionUpdate, data).model_dump(exclude_none=True)
        for key in ("type", "difficulty"):
            if key in fields:
                fields[key] = fields[key].value
        entry = self.sessions.update(session_id, fields)
        logger.info("user %s updated session %s", user_id, session_id)
        return entry

    def delete(self, user_id: int, session_id: int) -> None:
        self._owned(user_id, session_id, "delete")
        removed = self.sessions.delete_cascade(session_id)
        logger.info(
            "user %s deleted session %s (%s progress records removed)",
            user_id,
            session_id,
            removed,
        )
