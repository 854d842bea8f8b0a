"""
HoopLog request schemas.

Every payload coming from the app passes through one of these models before
it reaches a repository. Services call :func:`parse`, which turns a pydantic
``ValidationError`` into an :class:`errors.InvalidInputError` so the HTTP
layer answers 400 with a readable message.
"""
from typing import Annotated, Optional, Type, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, EmailStr, Field, ValidationError

from errors import InvalidInputError
from models import Difficulty, SessionType

ModelT = TypeVar("ModelT", bound=BaseModel)

def _session_type(value):
    if value is None or isinstance(value, SessionType):
        return value
    try:
        return SessionType(value)
    except ValueError:
        raise ValueError("Invalid session type")

def _difficulty(value):
    if value is None or isinstance(value, Difficulty):
        return value
    try:
        return Difficulty(value)
    except ValueError:
        raise ValueError("Invalid difficulty")

def _strip(value):
    return value.strip() if isinstance(value, str) else value

StrippedStr = Annotated[str, BeforeValidator(_strip)]
SessionTypeField = Annotated[SessionType, BeforeValidator(_session_type)]
DifficultyField = Annotated[Difficulty, BeforeValidator(_difficulty)]

class SignupRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: StrippedStr = Field(..., min_length=1, alias="fullName")
    email: EmailStr
    password: str = Field(..., min_length=6)

class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)

class SessionCreate(BaseModel):
    title: StrippedStr = Field(..., min_length=1)
    type: SessionTypeField
    difficulty: DifficultyField
    duration: int = Field(..., gt=0)
    intensity: int = Field(..., ge=1, le=10)
    description: str = ""

class SessionUpdate(BaseModel):
    title: Optional[StrippedStr] = Field(None, min_length=1)
    type: Optional[SessionTypeField] = None
    difficulty: Optional[DifficultyField] = None
    duration: Optional[int] = Field(None, gt=0)
    intensity: Optional[int] = Field(None, ge=1, le=10)
    description: Optional[str] = None
    image: Optional[str] = None

class ProgressUpdate(BaseModel):
    progress: Optional[int] = Field(None, ge=0, le=100)
    favorite: Optional[bool] = None

class FavoriteToggle(BaseModel):
    favorite: Optional[bool] = None

class SettingsUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    motivational_quotes: Optional[bool] = Field(None, alias="motivationalQuotes")
    vibration_effects: Optional[bool] = Field(None, alias="vibrationEffects")

class ProfileUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: Optional[StrippedStr] = Field(None, min_length=1, alias="fullName")
    phone: Optional[str] = None

def format_errors(error: ValidationError) -> str:
    parts = []
    for err in error.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()))
        msg = err.get("msg", "invalid value")
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)

def parse(model: Type[ModelT], data: Optional[dict]) -> ModelT:
    if data is not None and not isinstance(data, dict):
        raise InvalidInputError("Request body must be an object")
    try:
        return model.model_validate(data or {})
    except ValidationError as e:
        raise InvalidInputError(format_errors(e))
