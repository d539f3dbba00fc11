from ridematch.start import uvicorn_settings


def test_defaults_run_a_single_worker():
    config = uvicorn_settings({})
    assert config["app"] == "ridematch.server:app"
    assert config["port"] == 8000
    assert config["workers"] == 1
    assert config["log_level"] == "debug"


def test_environment_overrides():
    config = uvicorn_settings({"PORT": "9000", "HOST": "127.0.0.1", "RENDER": "1", "WEB_CONCURRENCY": "2"})
    assert (config["host"], config["port"], config["workers"]) == ("127.0.0.1", 9000, 2)
    assert config["log_level"] == "info"
