import os
import yaml
import keyring

from settings_schema import ServerSettings, validate_settings

APP_VERSION = "1.0.0"


class YamlConfig:
    """Load and save server settings to a YAML file with optional encryption."""

    SENSITIVE_KEYS = {
        "jwt_secret",
    }

    def __init__(self, path: str = "hooplog.yaml") -> None:
        self.path = path
        self.encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.service = "hooplog"

    def load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if self.encrypt:
            for key in list(data.keys()):
                if key in self.SENSITIVE_KEYS:
                    secret = keyring.get_password(self.service, key)
                    if secret is not None:
                        data[key] = secret
                    else:
                        data.pop(key, None)
        return data

    def save(self, data: dict) -> None:
        out = dict(data)
        if self.encrypt:
            for key in self.SENSITIVE_KEYS:
                if key in out:
                    keyring.set_password(self.service, key, str(out[key]))
                    out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f)


def load_server_settings(path: str = "hooplog.yaml", **overrides) -> ServerSettings:
    """Return validated settings from ``path``, the environment and ``overrides``."""
    data = YamlConfig(path).load()
    if os.environ.get("HOOPLOG_DB"):
        data["db_path"] = os.environ["HOOPLOG_DB"]
    if os.environ.get("JWT_SECRET"):
        data["jwt_secret"] = os.environ["JWT_SECRET"]
    data.update({k: v for k, v in overrides.items() if v is not None})
    validate_settings(data)
    return ServerSettings(**data)
