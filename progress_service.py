import logging
from typing import Optional

from db import ProgressRepository, SessionRepository
from errors import NotFoundError
from models import ProgressRecord
from schemas import FavoriteToggle, ProgressUpdate, parse

logger = logging.getLogger(__name__)


class ProgressTrackingService:
    """Manage a user's subscriptions and the progress/favorite state on them.

    ``subscribe``, ``update_progress`` and ``toggle_favorite`` create the
    record when it is missing; ``unsubscribe`` fails when there is nothing to
    remove.
    """

    def __init__(
        self, progress: ProgressRepository, sessions: SessionRepository
    ) -> None:
        self.progress = progress
        self.sessions = sessions

    def _require_session(self, session_id: int) -> None:
        if not self.sessions.exists(session_id):
            raise NotFoundError("Session not found")

    def subscribe(self, user_id: int, session_id: int) -> ProgressRecord:
        self._require_session(session_id)
        record, created = self.progress.get_or_create(user_id, session_id)
        if created:
            logger.info("user %s subscribed to session %s", user_id, session_id)
        return record

    def unsubscribe(self, user_id: int, session_id: int) -> None:
        if not self.progress.delete(user_id, session_id):
            raise NotFoundError("You are not subscribed to this session")
        logger.info("user %s unsubscribed from session %s", user_id, session_id)

    def update_progress(
        self, user_id: int, session_id: int, data: dict
    ) -> ProgressRecord:
        fields = parse(ProgressUpdate, data)
        self._require_session(session_id)
        record, created = self.progress.get_or_create(
            user_id,
            session_id,
            progress=fields.progress if fields.progress is not None else 0,
            favorite=fields.favorite if fields.favorite is not None else False,
        )
        if created:
            return record
        return self.progress.update(
            user_id, session_id, progress=fields.progress, favorite=fields.favorite
        )

    def toggle_favorite(
        self, user_id: int, session_id: int, favorite: Optional[bool] = None
    ) -> ProgressRecord:
        """Set ``favorite`` explicitly, or flip it when no value is given."""
        favorite = parse(FavoriteToggle, {"favorite": favorite}).favorite
        self._require_session(session_id)
        record, created = self.progress.get_or_create(
            user_id,
            session_id,
            favorite=favorite if favorite is not None else True,
        )
        if created:
            return record
        value = favorite if favorite is not None else not record.favorite
        return self.progress.update(user_id, session_id, favorite=value)

    def reset_all(self, user_id: int) -> int:
        removed = self.progress.delete_for_user(user_id)
        logger.info("user %s reset progress (%s records removed)", user_id, removed)
        return removed
