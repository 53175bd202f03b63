from __future__ import annotations

import os
import tomllib
from dataclasses import asdict, dataclass, replace

from .constants import DEFAULT_CENSORED_WORDS, MESSAGE_MAX_CHARS, NICK_MAX_CHARS

HOME_ENV = "ROOMRELAY_HOME"

# Files kept under the roomrelay home directory unless overridden.
DEFAULT_FILES = {
    "config": "roomrelay.toml",
    "identity": "hub_identity",
    "rooms": "rooms.toml",
}


def default_path(kind: str) -> str:
    home = os.environ.get(HOME_ENV) or os.path.join(os.path.expanduser("~"), ".roomrelay")
    return os.path.join(home, DEFAULT_FILES[kind])


@dataclass(frozen=True)
class HubRuntimeConfig:
    config_path: str | None = None
    room_list_path: str | None = None
    configdir: str | None = None
    identity_path: str | None = None
    dest_name: str = "roomrelay.hub"
    announce_on_start: bool = True
    announce_period_s: float = 0.0
    hub_name: str = "roomrelay"
    nick_max_chars: int = NICK_MAX_CHARS
    message_max_chars: int = MESSAGE_MAX_CHARS
    censored_words: tuple[str, ...] = DEFAULT_CENSORED_WORDS
    log_level: str = "INFO"
    log_rns_level: str = "WARNING"
    log_console: bool = True
    log_file: str | None = None
    log_format: str = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
    log_datefmt: str | None = None


_LOGGING_KEYS = {
    "level": "log_level",
    "rns_level": "log_rns_level",
    "console": "log_console",
    "file": "log_file",
    "format": "log_format",
    "datefmt": "log_datefmt",
}


def load_toml(path: str) -> dict:
    with open(path, "rb") as f:
        data = tomllib.load(f)
    return data if isinstance(data, dict) else {}


def apply_config_data(base: HubRuntimeConfig, data: dict) -> HubRuntimeConfig:
    """Overlay a parsed config file onto ``base``.

    Keys may live at the top level or under ``[hub]``; the ``[logging]``
    table maps onto the ``log_*`` fields. Unknown keys are ignored.
    """

    hub = data.get("hub") if isinstance(data, dict) else None
    if isinstance(hub, dict):
        data = {**data, **hub}

    log_table = data.get("logging") if isinstance(data, dict) else None
    if isinstance(log_table, dict):
        mapped = {
            field: log_table[key] for key, field in _LOGGING_KEYS.items() if key in log_table
        }
        data = {**data, **mapped}

    allowed = set(asdict(base).keys())
    # This identifies where the config came from; do not let the file override it.
    allowed.discard("config_path")

    updates = {k: v for k, v in data.items() if k in allowed}

    if "censored_words" in updates and isinstance(updates["censored_words"], list):
        updates["censored_words"] = tuple(str(x) for x in updates["censored_words"])

    if "announce" in data and "announce_on_start" not in updates:
        updates["announce_on_start"] = bool(data["announce"])

    for optional_key in ("configdir", "log_file", "log_datefmt"):
        if optional_key in updates and updates[optional_key] == "":
            updates[optional_key] = None

    return replace(base, **updates) if updates else base


def load_config_file(base: HubRuntimeConfig, path: str) -> HubRuntimeConfig:
    return apply_config_data(base, load_toml(path))
