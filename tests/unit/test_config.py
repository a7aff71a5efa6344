import logging

from stepflow.config import StepflowConfig, load_config, setup_logging


def test_defaults_when_no_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STEPFLOW_CONFIG", raising=False)
    monkeypatch.delenv("STEPFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("STEPFLOW_TRANSPORT", raising=False)

    config = load_config()

    assert config == StepflowConfig()
    assert config.executor.shell == "/bin/sh"
    assert config.transport.backend == "inmemory"


def test_load_from_env_path(tmp_path, monkeypatch):
    path = tmp_path / "custom.yaml"
    path.write_text(
        "log_level: DEBUG\n"
        "workflows_dir: ./flows\n"
        "executor:\n"
        "  shell: /bin/bash\n"
        "  prompt_timeout: 30\n"
        "transport:\n"
        "  backend: redis\n"
        "  redis:\n"
        "    port: 6380\n"
    )
    monkeypatch.setenv("STEPFLOW_CONFIG", str(path))
    monkeypatch.delenv("STEPFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("STEPFLOW_TRANSPORT", raising=False)

    config = load_config()

    assert config.log_level == "DEBUG"
    assert config.workflows_dir == "./flows"
    assert config.executor.shell == "/bin/bash"
    assert config.executor.prompt_timeout == 30
    assert config.transport.backend == "redis"
    assert config.transport.redis.port == 6380
    assert config.transport.redis.host == "localhost"


def test_env_overrides(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("STEPFLOW_CONFIG", raising=False)
    monkeypatch.setenv("STEPFLOW_DATABASE_URL", "sqlite:///tmp/runs.db")
    monkeypatch.setenv("STEPFLOW_TRANSPORT", "REDIS")

    config = load_config()

    assert config.database_url == "sqlite:///tmp/runs.db"
    assert config.transport.backend == "redis"


def test_empty_file_gives_defaults(tmp_path, monkeypatch):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    monkeypatch.delenv("STEPFLOW_DATABASE_URL", raising=False)
    monkeypatch.delenv("STEPFLOW_TRANSPORT", raising=False)

    assert load_config(str(path)) == StepflowConfig()


def test_setup_logging_accepts_unknown_level(monkeypatch):
    calls = []
    monkeypatch.setattr(logging, "basicConfig", lambda **kwargs: calls.append(kwargs))

    setup_logging(StepflowConfig(log_level="chatty"))
    setup_logging(StepflowConfig(log_level="warning"))

    assert [c["level"] for c in calls] == [logging.INFO, logging.WARNING]
