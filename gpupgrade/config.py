"""App configuration loading helpers."""

from __future__ import annotations

from pathlib import Path

import tomllib

from pydantic import BaseModel, Field, ValidationError

CONFIG_FILE = Path.home() / ".config" / "gpupgrade" / "config.toml"
DEFAULT_STATE_DIR = Path.home() / ".gp_upgrade"


class AppConfig(BaseModel):
    """Shape of the application configuration file."""

    state_dir: Path = Field(default_factory=lambda: DEFAULT_STATE_DIR)
    connect_timeout: float | None = 10.0
    query_timeout: float | None = 60.0
    log_level: str = "WARNING"

    def with_state_dir(self, path: Path) -> AppConfig:
        """Return a copy writing artifacts under ``path``."""

        return self.model_copy(update={"state_dir": path})


def load_config() -> AppConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file()
    except FileNotFoundError:
        return AppConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()

    try:
        return AppConfig(**data)
    except ValidationError:
        return AppConfig()


def save_config(config: AppConfig) -> None:
    """Persist configuration to disk."""

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)
    lines: list[str] = [
        f'state_dir = "{config.state_dir.as_posix()}"',
        f'log_level = "{config.log_level}"',
    ]
    if config.connect_timeout is not None:
        lines.append(f"connect_timeout = {float(config.connect_timeout)}")
    if config.query_timeout is not None:
        lines.append(f"query_timeout = {float(config.query_timeout)}")
    CONFIG_FILE.write_text("\n".join(lines) + "\n")


def _read_config_file() -> dict[str, object]:
    with CONFIG_FILE.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    state_dir = raw.get("state_dir")
    if isinstance(state_dir, str):
        data["state_dir"] = Path(state_dir).expanduser()
    for key in ("connect_timeout", "query_timeout"):
        value = raw.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            data[key] = float(value)
    log_level = raw.get("log_level")
    if isinstance(log_level, str):
        data["log_level"] = log_level.upper()
    return data


__all__ = ["AppConfig", "CONFIG_FILE", "DEFAULT_STATE_DIR", "load_config", "save_config"]
