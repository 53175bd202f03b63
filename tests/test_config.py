from roomrelay.config import HubRuntimeConfig, apply_config_data, default_path, load_config_file
from roomrelay.constants import DEFAULT_CENSORED_WORDS


def test_defaults() -> None:
    cfg = HubRuntimeConfig()
    assert cfg.nick_max_chars == 24
    assert cfg.message_max_chars == 1024
    assert cfg.censored_words == DEFAULT_CENSORED_WORDS


def test_hub_and_logging_tables_are_applied(tmp_path) -> None:
    p = tmp_path / "roomrelay.toml"
    p.write_text(
        """
[hub]
room_list_path = "/srv/rooms.toml"
hub_name = "test"
censored_words = ["darn"]
configdir = ""

[logging]
level = "DEBUG"
file = ""
""",
        encoding="utf-8",
    )
    base = HubRuntimeConfig(config_path=str(p))
    cfg = load_config_file(base, str(p))
    assert cfg.room_list_path == "/srv/rooms.toml"
    assert cfg.hub_name == "test"
    assert cfg.censored_words == ("darn",)
    assert cfg.configdir is None
    assert cfg.log_level == "DEBUG"
    assert cfg.log_file is None
    assert cfg.config_path == str(p)


def test_unknown_keys_and_config_path_are_ignored() -> None:
    base = HubRuntimeConfig(config_path="/etc/a.toml")
    cfg = apply_config_data(base, {"config_path": "/tmp/b.toml", "bogus": 1})
    assert cfg == base


def test_announce_alias() -> None:
    cfg = apply_config_data(HubRuntimeConfig(), {"announce": False})
    assert cfg.announce_on_start is False


def test_default_paths_follow_home_override(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("ROOMRELAY_HOME", str(tmp_path))
    assert default_path("config") == str(tmp_path / "roomrelay.toml")
    assert default_path("identity") == str(tmp_path / "hub_identity")
    assert default_path("rooms") == str(tmp_path / "rooms.toml")

    monkeypatch.delenv("ROOMRELAY_HOME")
    assert default_path("rooms").endswith(".roomrelay/rooms.toml")
