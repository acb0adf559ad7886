from __future__ import annotations

from dataclasses import dataclass, field
import os
from pathlib import Path
import tomllib

from filestash.store import FileStore


@dataclass(frozen=True)
class StoreConfig:
    directory: str = ".filestash"
    namespace: str = ""
    default_lifetime: int = 0


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class Config:
    store: StoreConfig = field(default_factory=StoreConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def directory(self) -> Path:
        return Path(self.store.directory)

    def open_store(self) -> FileStore:
        return FileStore(self.directory, self.store.namespace)


CONFIG_ENV = "FILESTASH_CONFIG"
DEFAULT_CONFIG_PATH = Path("filestash.toml")


def load_config(path: Path | None = None) -> Config:
    config_path = path or Path(os.environ.get(CONFIG_ENV) or DEFAULT_CONFIG_PATH)
    if not config_path.exists():
        if path is not None:
            raise FileNotFoundError(f"Missing config file: {config_path}")
        return Config()

    raw = tomllib.loads(config_path.read_text(encoding="utf-8"))

    store = raw.get("store", {})
    logging = raw.get("logging", {})

    return Config(
        store=StoreConfig(**store),
        logging=LoggingConfig(**logging),
    )
