import logging
from pathlib import Path

import pytest

from gridfantasy.config import PRICING_RULES, SCORING_RULES, Settings, parse_api_tokens


def test_point_tables():
    assert len(SCORING_RULES.race_points) == 20
    assert SCORING_RULES.race_points[0] == 45
    assert SCORING_RULES.race_points[-1] == 1
    assert len(PRICING_RULES.race_points) == 10
    assert PRICING_RULES.bands["A"].delta_for("great") == 36
    assert PRICING_RULES.bands["C"].delta_for("terrible") == -12


def test_rules_are_frozen():
    with pytest.raises(AttributeError):
        SCORING_RULES.ace_multiplier = 3


def test_parse_api_tokens_skips_malformed_entries(caplog):
    with caplog.at_level(logging.WARNING, logger="gridfantasy.config.settings"):
        tokens = parse_api_tokens("abc:u1, broken ,def: u2,:u3,")
    assert tokens == {"abc": "u1", "def": "u2"}
    assert "broken" in caplog.text
    assert parse_api_tokens(None) == {}


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("GRIDFANTASY_DB_PATH", "/tmp/grid.sqlite")
    monkeypatch.setenv("GRIDFANTASY_BATCH_LIMIT", "9999")
    monkeypatch.setenv("GRIDFANTASY_WORKERS", "4")
    monkeypatch.setenv("GRIDFANTASY_API_TOKENS", "t:u1")
    monkeypatch.setenv("GRIDFANTASY_LOG_LEVEL", "debug")

    settings = Settings.from_env()
    assert settings.db_path == Path("/tmp/grid.sqlite")
    assert settings.batch_op_limit == 499
    assert settings.workers == 4
    assert settings.api_tokens == {"t": "u1"}
    assert settings.log_level == "DEBUG"

    assert Settings.from_env(db_path="other.sqlite").db_path == Path("other.sqlite")


def test_invalid_int_falls_back_to_default(monkeypatch, caplog):
    monkeypatch.setenv("GRIDFANTASY_WORKERS", "many")
    with caplog.at_level(logging.WARNING, logger="gridfantasy.config.settings"):
        settings = Settings.from_env()
    assert settings.workers == 1
    assert "GRIDFANTASY_WORKERS" in caplog.text
