from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import replace

import RNS

from .config import HubRuntimeConfig, default_path, load_config_file
from .logging_config import configure_logging
from .rooms import RoomListError
from .service import HubService


def _make_private_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)
    try:
        os.chmod(path, 0o700)
    except OSError:
        pass


def _write_default_config(config_path: str, identity_path: str, room_list_path: str) -> None:
    cfg_dir = os.path.dirname(config_path)
    if cfg_dir:
        _make_private_dir(cfg_dir)

    content = f"""# roomrelay configuration (TOML)
#
# This file was created on first run.
# Edit it, then start roomrelayd again.

[hub]

# Optional: Reticulum configuration directory.
# If left unset, Reticulum will choose its default (usually ~/.reticulum).
configdir = ""

# Where roomrelayd stores its persistent identity (Reticulum Identity file).
identity_path = {identity_path!r}

# The list of private room codes clients may join. Read once at startup;
# the hub refuses to start if it is missing or malformed.
room_list_path = {room_list_path!r}

# Destination name to host the hub on.
dest_name = "roomrelay.hub"

# announce_on_start: send a single announce right after startup.
# announce_period_s: if >0, periodically re-announce.
announce_on_start = true
announce_period_s = 0.0

hub_name = "roomrelay"

# Text limits, applied after censoring.
nick_max_chars = 24
message_max_chars = 1024

# Words replaced by asterisks in nicknames and messages (whole words,
# case-insensitive). Remove the key to use the built-in list.
# censored_words = ["darn", "heck"]

[logging]
level = "INFO"
rns_level = "WARNING"
console = true
file = ""
format = "%(asctime)s %(levelname)s %(name)s[%(threadName)s]: %(message)s"
datefmt = ""
"""

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(content)


_DEFAULT_ROOM_LIST = """# roomrelay private rooms (TOML)
#
# Clients join a private room by sending its code. Incoming codes are
# uppercased and cut to 7 characters before they are compared, so every
# entry here should be at most 7 uppercase characters.
#
# Example
# -------
#
# private = ["ABCDEFG", "LOBBY42"]

private = []
"""


def _ensure_first_run_files(
    config_path: str, identity_path: str, room_list_path: str
) -> bool:
    created_any = False
    config_created = False

    if not os.path.exists(config_path):
        _write_default_config(config_path, identity_path, room_list_path)
        config_created = created_any = True

    if not os.path.exists(identity_path):
        storage_dir = os.path.dirname(identity_path)
        if storage_dir:
            _make_private_dir(storage_dir)
        ident = RNS.Identity()
        ident.to_file(identity_path)
        try:
            os.chmod(identity_path, 0o600)
        except OSError:
            pass
        created_any = True

    # Only seeded alongside a fresh config. Later on a missing room list is
    # an operator error and must stop the hub.
    if config_created and room_list_path and not os.path.exists(room_list_path):
        storage_dir = os.path.dirname(room_list_path)
        if storage_dir:
            _make_private_dir(storage_dir)
        with open(room_list_path, "w", encoding="utf-8") as f:
            f.write(_DEFAULT_ROOM_LIST)
        created_any = True

    return created_any


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="roomrelayd", description="Run a public/private room chat hub"
    )

    p.add_argument(
        "--config",
        default=str(default_path("config")),
        help="Path to a TOML config file (created on first run)",
    )
    p.add_argument("--configdir", default=None, help="Reticulum config directory")

    p.add_argument(
        "--identity",
        default=str(default_path("identity")),
        help="Path to hub identity file (created on first run)",
    )
    p.add_argument(
        "--rooms",
        default=None,
        help="Path to the private room list (TOML, or JSON if it ends in .json)",
    )
    p.add_argument(
        "--dest-name", default=None, help="Destination app name (default: roomrelay.hub)"
    )

    p.add_argument(
        "--no-announce",
        action="store_true",
        help="Disable announce on start (does not affect periodic announce)",
    )
    p.add_argument(
        "--announce-period",
        type=float,
        default=None,
        help="Periodic announce interval seconds (0 disables)",
    )
    p.add_argument("--hub-name", default=None, help="Hub name in announces")

    p.add_argument(
        "--log-level",
        default=None,
        help="Logging level override (DEBUG, INFO, WARNING, ERROR). Default comes from config.",
    )
    p.add_argument(
        "--log-file",
        default=None,
        help="Log file path override (empty disables file logging). Default comes from config.",
    )

    return p


def build_config(args: argparse.Namespace) -> HubRuntimeConfig:
    cfg = HubRuntimeConfig(
        config_path=str(args.config),
        configdir=args.configdir,
        identity_path=str(args.identity),
        room_list_path=str(default_path("rooms")),
    )
    if os.path.exists(cfg.config_path):
        cfg = load_config_file(cfg, cfg.config_path)

    # Command line wins over the file.
    if args.configdir is not None:
        cfg = replace(cfg, configdir=args.configdir)
    if args.rooms is not None:
        cfg = replace(cfg, room_list_path=str(args.rooms))
    if args.dest_name is not None:
        cfg = replace(cfg, dest_name=args.dest_name)
    if args.no_announce:
        cfg = replace(cfg, announce_on_start=False)
    if args.announce_period is not None:
        cfg = replace(cfg, announce_period_s=float(args.announce_period))
    if args.hub_name is not None:
        cfg = replace(cfg, hub_name=args.hub_name)
    if args.log_level is not None:
        cfg = replace(cfg, log_level=str(args.log_level))
    if args.log_file is not None:
        cfg = replace(cfg, log_file=str(args.log_file) if str(args.log_file) else None)
    return cfg


def main(argv: list[str] | None = None) -> None:
    args = _build_arg_parser().parse_args(sys.argv[1:] if argv is None else argv)

    config_path = str(args.config)
    identity_path = str(args.identity)
    room_list_path = str(args.rooms) if args.rooms else str(default_path("rooms"))

    if _ensure_first_run_files(config_path, identity_path, room_list_path):
        print(
            "Created default roomrelay files. Edit them before starting:\n"
            f"- Config:   {config_path}\n"
            f"- Identity: {identity_path}\n"
            f"- Rooms:    {room_list_path}\n"
            "\nThen re-run roomrelayd.",
            file=sys.stderr,
        )
        raise SystemExit(0)

    cfg = build_config(args)
    configure_logging(cfg, override_level=args.log_level, override_file=args.log_file)

    svc = HubService(cfg)
    try:
        svc.start()
    except RoomListError as e:
        logging.getLogger("roomrelay").critical("Cannot start: %s", e)
        raise SystemExit(2) from e
    svc.run_forever()


if __name__ == "__main__":
    main()
