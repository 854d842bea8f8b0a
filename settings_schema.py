from typing import Optional

from pydantic import BaseModel, Field, ValidationError


class ServerSettings(BaseModel):
    db_path: str = "hooplog.db"
    upload_dir: str = "uploads"
    jwt_secret: str = "dev-secret-change-me"
    jwt_algorithm: str = "HS256"
    token_expire_days: int = Field(7, ge=1)
    rate_limit: Optional[int] = Field(None, ge=1)
    rate_window: int = Field(60, ge=1)
    log_level: str = "INFO"


def validate_settings(data: dict) -> None:
    try:
        ServerSettings(**data)
    except ValidationError as e:
        raise ValueError(str(e))
