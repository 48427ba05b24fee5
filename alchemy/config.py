import json
import os
from dataclasses import dataclass, fields
from typing import Optional, Dict, Any, Tuple


def _env_seed() -> Optional[int]:
    raw = os.getenv("ALCHEMY_SEED")
    return int(raw) if raw else None


@dataclass
class CoreConfig:
    SEED: Optional[int] = _env_seed()  # None -> nondeterministic spawn jitter
    DEBUG: bool = os.getenv("ALCHEMY_DEBUG", "0") == "1"


@dataclass
class StorageConfig:
    # Directory for per-player discovery files
    MEMORY_DIR: str = os.getenv("ALCHEMY_MEMORY_DIR", os.path.expanduser("~/.alchemy"))

    # SQLite settings
    USE_SQLITE: bool = os.getenv("ALCHEMY_USE_SQLITE", "1") == "1"
    SQLITE_DB_NAME: str = "discoveries.db"
    JSON_FILE_NAME: str = "discoveries.json"

    # Persistence slots
    INVENTORY_KEY: str = "alchemy_inventory"
    RECIPES_KEY: str = "alchemy_recipes"


@dataclass
class WorkspaceConfig:
    COLLISION_THRESHOLD: float = 60.0   # exclusive
    ROLLBACK_OFFSET: float = 30.0
    NARROW_VIEWPORT: int = 768
    NARROW_SPAWN: Tuple[float, float] = (50.0, 100.0)
    WIDE_SPAWN: Tuple[float, float] = (200.0, 200.0)
    SPAWN_JITTER: float = 50.0
    DEFAULT_VIEWPORT: int = 1280


@dataclass
class GeneratorConfig:
    MODEL: str = os.getenv("ALCHEMY_MODEL", "gpt-4o-mini")
    TIMEOUT: float = float(os.getenv("ALCHEMY_TIMEOUT", "30"))
    MAX_NAME_LENGTH: int = 40
    MAX_GLYPH_LENGTH: int = 8


@dataclass
class ServerConfig:
    HOST: str = os.getenv("ALCHEMY_HOST", "127.0.0.1")
    PORT: int = int(os.getenv("ALCHEMY_PORT", "8000"))
    RELOAD: bool = os.getenv("ALCHEMY_RELOAD", "0") == "1"


class Config:
    """Centralized configuration."""
    core = CoreConfig()
    storage = StorageConfig()
    workspace = WorkspaceConfig()
    generator = GeneratorConfig()
    server = ServerConfig()

    _SECTIONS = ("core", "storage", "workspace", "generator", "server")

    @classmethod
    def to_dict(cls) -> Dict[str, Any]:
        """Serialize all config sections to a flat dictionary."""
        result = {}
        for section_name in cls._SECTIONS:
            section = getattr(cls, section_name)
            for f in fields(section):
                result[f"{section_name}.{f.name}"] = getattr(section, f.name)
        return result

    @classmethod
    def from_dict(cls, data: Dict[str, Any], apply_env_overrides: bool = True):
        """
        Update config from a flat dictionary.
        If apply_env_overrides is True, environment variables take precedence.
        """
        for key, value in data.items():
            if "." not in key:
                continue
            section_name, field_name = key.split(".", 1)
            if section_name not in cls._SECTIONS:
                continue
            section = getattr(cls, section_name)
            if not hasattr(section, field_name):
                continue

            env_key = f"ALCHEMY_{field_name}"
            if apply_env_overrides and env_key in os.environ:
                continue

            current_value = getattr(section, field_name)
            if value is None or current_value is None:
                pass
            elif isinstance(current_value, bool):
                value = str(value).lower() in ("1", "true", "yes")
            elif isinstance(current_value, int):
                value = int(value)
            elif isinstance(current_value, float):
                value = float(value)
            elif isinstance(current_value, tuple):
                value = tuple(float(v) for v in value)

            setattr(section, field_name, value)

    @classmethod
    def load_file(cls, path: str, apply_env_overrides: bool = True) -> int:
        """Apply a JSON file of flat `section.FIELD` values. Returns how many it held."""
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        if not isinstance(data, dict):
            raise ValueError(f"Config file {path} must hold a JSON object")
        cls.from_dict(data, apply_env_overrides=apply_env_overrides)
        return len(data)

    @classmethod
    def save_file(cls, path: str):
        """Write the current settings as a file `load_file` accepts."""
        with open(path, "w", encoding="utf-8") as fh:
            json.dump(cls.to_dict(), fh, indent=2)

    @classmethod
    def player_save_path(cls, player: str) -> str:
        """Path of a player's discovery file, per the storage backend setting."""
        file_name = cls.storage.SQLITE_DB_NAME if cls.storage.USE_SQLITE else cls.storage.JSON_FILE_NAME
        return os.path.join(cls.storage.MEMORY_DIR, player, file_name)
