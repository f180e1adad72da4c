import yaml

from planner.core.config import DEFAULT_CONFIG, Config


def test_missing_config_is_created_with_defaults(tmp_path):
    config = Config(config_path=str(tmp_path / "config.yaml"), watch=False)

    assert (tmp_path / "config.yaml").exists()
    assert config.section("downtime") == DEFAULT_CONFIG["downtime"]
    assert config.section("prayer")["calculation_method"] == 2
    assert config.section("nothing") == {}


def test_file_values_override_defaults_and_env_is_substituted(tmp_path, monkeypatch):
    monkeypatch.setenv("TELEGRAM_BOT_TOKEN", "123:abc")
    monkeypatch.delenv("TELEGRAM_CHAT_ID", raising=False)
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.safe_dump({"downtime": {"rotation_minutes": 45}, "api": {"enabled": True}}))

    config = Config(config_path=str(config_file), watch=False)

    assert config.section("downtime") == {"rotation_minutes": 45, "grip_minutes": 1, "grip_interval_minutes": 30}
    assert config.section("api")["enabled"] is True
    assert config.section("api")["port"] == 8765
    assert config.section("notifier")["bot_token"] == "123:abc"
    assert config.section("notifier")["chat_id"] is None


def test_dotenv_file_next_to_config_is_loaded(tmp_path, monkeypatch):
    # set then delete so monkeypatch also removes what the .env loader adds
    monkeypatch.setenv("TELEGRAM_CHAT_ID", "placeholder")
    monkeypatch.delenv("TELEGRAM_CHAT_ID")
    (tmp_path / ".env").write_text("# secrets\nTELEGRAM_CHAT_ID='42'\n")
    config = Config(config_path=str(tmp_path / "config.yaml"), watch=False)
    assert config.section("notifier")["chat_id"] == "42"


def test_reload_notifies_callbacks_and_keeps_previous_on_bad_yaml(tmp_path):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.safe_dump({"downtime": {"rotation_minutes": 30}}))
    config = Config(config_path=str(config_file), watch=False)
    seen = []
    config.register_change_callback(seen.append)

    config_file.write_text(yaml.safe_dump({"downtime": {"rotation_minutes": 20}}))
    config.reload()
    assert seen[-1]["downtime"]["rotation_minutes"] == 20

    config_file.write_text("downtime: [unclosed")
    config.reload()
    assert config.section("downtime")["rotation_minutes"] == 20
