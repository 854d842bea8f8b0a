import logging
from typing import Optional

from db import SettingsRepository, UserRepository
from image_service import ImageService
from models import User, UserSettings
from schemas import ProfileUpdate, SettingsUpdate, parse

logger = logging.getLogger(__name__)


class ProfileService:
    """Read and update the caller's profile."""

    def __init__(self, users: UserRepository, images: ImageService) -> None:
        self.users = users
        self.images = images

    def get(self, user_id: int) -> User:
        return self.users.fetch(user_id)

    def update(
        self, user_id: int, data: dict, avatar: Optional[bytes] = None
    ) -> User:
        fields = parse(ProfileUpdate, data)
        avatar_ref = self.images.save("avatars", avatar) if avatar else None
        try:
            user = self.users.update_profile(
                user_id,
                full_name=fields.full_name,
                phone=fields.phone,
                avatar=avatar_ref,
            )
        except Exception:
            self.images.discard(avatar_ref)
            raise
        logger.info("user %s updated profile", user_id)
        return user

    def avatar(self, user: User) -> tuple[Optional[str], bytes]:
        """Return the stored avatar path, or ``None`` and a generated PNG."""
        path = self.images.path_for(user.avatar)
        if path is not None:
            return path, b""
        return None, self.images.default_avatar(user.id)


class SettingsService:
    def __init__(self, settings: SettingsRepository) -> None:
        self.settings = settings

    def get(self, user_id: int) -> UserSettings:
        return self.settings.fetch(user_id)

    def update(self, user_id: int, data: dict) -> UserSettings:
        fields = parse(SettingsUpdate, data)
        return self.settings.update(
            user_id,
            motivational_quotes=fields.motivational_quotes,
            vibration_effects=fields.vibration_effects,
        )
