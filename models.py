from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, Tuple


class SessionType(str, Enum):
    SHOOTING = "Shooting"
    DRIBBLING_SKILLS = "DribblingSkills"
    DEFENSE = "Defense"
    PHYSICAL_STAMINA = "PhysicalStamina"
    LAYUP = "Layup"
    TECHNICAL_SKILLS = "TechnicalSkills"

    @classmethod
    def _missing_(cls, value):
        # the app sends display labels such as "Dribbling Skills"
        if isinstance(value, str):
            compact = value.replace(" ", "").lower()
            for member in cls:
                if member.value.lower() == compact:
                    return member
        return None


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            for member in cls:
                if member.value.lower() == value.strip().lower():
                    return member
        return None


@dataclass(frozen=True)
class Owner:
    """Owner of a catalog entry: the system (prebuilt) or a user (custom)."""

    user_id: Optional[int] = None

    @classmethod
    def from_column(cls, value: Optional[int]) -> "Owner":
        return SYSTEM if value is None else cls(int(value))

    @property
    def is_system(self) -> bool:
        return self.user_id is None

    def is_user(self, user_id: int) -> bool:
        return self.user_id is not None and self.user_id == user_id

    def to_column(self) -> Optional[int]:
        return self.user_id


SYSTEM = Owner()


@dataclass
class User:
    id: int
    email: str
    full_name: str
    password_hash: str
    phone: str
    avatar: str
    created_at: str

    @classmethod
    def from_row(cls, row: Tuple) -> "User":
        uid, email, full_name, password_hash, phone, avatar, created_at = row
        return cls(
            int(uid),
            email,
            full_name,
            password_hash,
            phone or "",
            avatar or "",
            created_at,
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("password_hash")
        return data


@dataclass
class CatalogEntry:
    id: int
    title: str
    type: str
    difficulty: str
    duration: int
    intensity: int
    description: str
    image: Optional[str]
    owner: Owner
    created_at: str

    @classmethod
    def from_row(cls, row: Tuple) -> "CatalogEntry":
        (
            sid,
            title,
            session_type,
            difficulty,
            duration,
            intensity,
            description,
            image,
            owner_id,
            created_at,
        ) = row
        return cls(
            int(sid),
            title,
            session_type,
            difficulty,
            int(duration),
            int(intensity),
            description or "",
            image,
            Owner.from_column(owner_id),
            created_at,
        )

    @property
    def is_prebuilt(self) -> bool:
        return self.owner.is_system

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "difficulty": self.difficulty,
            "duration": self.duration,
            "intensity": self.intensity,
            "description": self.description,
            "image": self.image,
            "owner_id": self.owner.to_column(),
            "prebuilt": self.is_prebuilt,
            "created_at": self.created_at,
        }


@dataclass
class ProgressRecord:
    id: int
    user_id: int
    session_id: int
    progress: int
    favorite: bool
    created_at: str

    @classmethod
    def from_row(cls, row: Tuple) -> "ProgressRecord":
        pid, user_id, session_id, progress, favorite, created_at = row
        return cls(
            int(pid),
            int(user_id),
            int(session_id),
            int(progress),
            bool(favorite),
            created_at,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class UserSettings:
    user_id: int
    motivational_quotes: bool
    vibration_effects: bool

    @classmethod
    def from_row(cls, row: Tuple) -> "UserSettings":
        user_id, quotes, vibration = row
        return cls(int(user_id), bool(quotes), bool(vibration))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Quote:
    id: int
    text: str
    author: str

    def to_dict(self) -> dict:
        return asdict(self)
