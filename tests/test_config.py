import json

from config import DEFAULT_REFRESH_TIME, AppConfig, load_config, save_config


def test_missing_file_uses_defaults(tmp_path):
    config = load_config(tmp_path / "config.json")

    assert config.location.city == "Makkah"
    assert config.azan_enabled is True
    assert config.notification_permission == "undetermined"
    assert config.timezone == "Asia/Riyadh"
    assert config.refresh_time == DEFAULT_REFRESH_TIME


def test_load_config_reads_location_and_flags(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "backend_url": "https://backend.example.test",
                "location": {
                    "city": "Tangier",
                    "country": "MA",
                    "latitude": "35.7673",
                    "longitude": -5.7998,
                    "timezone": "Africa/Casablanca",
                },
                "azan_enabled": False,
                "notification_permission": "granted",
                "refresh_time": "01:30",
                "log_level": "info",
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.backend_url == "https://backend.example.test"
    assert config.location.latitude == 35.7673
    assert config.timezone == "Africa/Casablanca"
    assert config.azan_enabled is False
    assert config.notification_permission == "granted"
    assert config.refresh_time == "01:30"
    assert config.log_level == "INFO"


def test_invalid_values_fall_back(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "location": {"city": "Nowhere", "latitude": "north"},
                "timezone": "Mars/Olympus_Mons",
                "refresh_time": "25:00",
            }
        ),
        encoding="utf-8",
    )

    config = load_config(path)

    assert config.location.city == "Makkah"
    assert config.timezone == "UTC"
    assert config.refresh_time == DEFAULT_REFRESH_TIME


def test_save_config_round_trips(tmp_path):
    path = tmp_path / "config.json"
    config = AppConfig(backend_url="https://backend.example.test", notification_permission="denied")

    save_config(path, config)
    reloaded = load_config(path)

    assert reloaded.backend_url == "https://backend.example.test"
    assert reloaded.notification_permission == "denied"
    assert reloaded.location.city == config.location.city
