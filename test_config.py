import os

import pytest

from ridematch.config import load_settings

SETTING_VARS = (
    "GOOGLE_MAPS_API_KEY",
    "MATCH_PROXIMITY_KM",
    "MATCH_MIN_SCORE",
    "MATCH_DEADLINE_S",
    "CORS_ORIGINS",
)


@pytest.fixture
def clean_environ():
    saved = {name: os.environ.pop(name) for name in SETTING_VARS if name in os.environ}
    yield
    # load_dotenv writes straight into os.environ
    for name in SETTING_VARS:
        os.environ.pop(name, None)
    os.environ.update(saved)


def test_defaults_without_environment(clean_environ, tmp_path):
    settings = load_settings(tmp_path / "missing.env")
    config = settings.match_config()

    assert settings.google_maps_api_key is None
    assert settings.cors_origins == ["*"]
    assert config.proximity_threshold_km == 2.0
    assert config.min_match_score == 30
    assert config.match_deadline_s is None


def test_env_file_feeds_match_config(clean_environ, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("MATCH_PROXIMITY_KM=1.5\nMATCH_MIN_SCORE=40\nMATCH_DEADLINE_S=3\n")

    config = load_settings(env_file).match_config()

    assert config.proximity_threshold_km == 1.5
    assert config.min_match_score == 40
    assert config.match_deadline_s == 3.0
