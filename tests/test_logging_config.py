from property_import.core.logging_config import LOG_FORMAT, QUIET_LOGGERS, build_logging_config


def test_logging_config_uses_requested_level():
    config = build_logging_config("DEBUG")

    assert config["root"]["level"] == "DEBUG"
    assert config["handlers"]["stdout"]["level"] == "DEBUG"
    assert config["formatters"]["import"]["format"] == LOG_FORMAT


def test_third_party_loggers_stay_quiet():
    loggers = build_logging_config("DEBUG")["loggers"]

    assert set(loggers) == set(QUIET_LOGGERS)
    assert all(entry["level"] == "WARNING" for entry in loggers.values())
