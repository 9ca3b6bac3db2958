import pytest
from dockview.config import (
    Config,
    ConfigManager,
    check_if_containerised,
    load_config,
    read_docker_host,
)
from dockview.errors import ConfigError


@pytest.fixture
def no_config_file(tmp_path):
    return ["--config", str(tmp_path / "missing.yaml")]


def test_defaults(no_config_file):
    config = load_config(no_config_file, environ={})

    assert config.host is None
    assert config.docker_interval_ms == 1000
    assert config.docker_interval == 1.0
    assert config.gui is True
    assert config.in_container is False
    assert config.log_level == "INFO"


def test_host_priority():
    assert read_docker_host("tcp://cli:2375", {"DOCKER_HOST": "tcp://env:2375"}) == "tcp://cli:2375"
    assert read_docker_host(None, {"DOCKER_HOST": "tcp://env:2375"}) == "tcp://env:2375"
    assert read_docker_host(None, {"DOCKER_HOST": ""}) is None
    assert read_docker_host(None, {}) is None


def test_host_from_env_overrides_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("host: tcp://file:2375\n")

    assert load_config(["--config", str(path)], environ={}).host == "tcp://file:2375"
    config = load_config(["--config", str(path)], environ={"DOCKER_HOST": "tcp://env:2375"})
    assert config.host == "tcp://env:2375"


def test_containerised_flag(no_config_file):
    assert check_if_containerised({"DOCKVIEW_RUNTIME": "container"})
    assert not check_if_containerised({"DOCKVIEW_RUNTIME": "host"})
    assert load_config(no_config_file, environ={"DOCKVIEW_RUNTIME": "container"}).in_container


def test_cli_flags(no_config_file):
    config = load_config(no_config_file + ["-g", "-d", "250", "--log-level", "debug"], environ={})

    assert config.gui is False
    assert config.docker_interval_ms == 250
    assert config.docker_interval == 0.25
    assert config.log_level == "DEBUG"


def test_yaml_merge(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "docker_interval_ms: '500'\n"
        "gui: 'no'\n"
        "status_ttl: 2\n"
        "unknown_key: 1\n"
    )

    config = load_config(["--config", str(path), "-d", "2000"], environ={})

    assert config.docker_interval_ms == 2000  # CLI wins over file
    assert config.gui is False
    assert config.status_ttl == 2.0


def test_unreadable_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("docker_interval_ms: [unclosed\n")

    assert ConfigManager(path).load() == {}


def test_non_mapping_yaml_ignored(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")

    assert ConfigManager(path).load() == {}


def test_invalid_yaml_value(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("timeout: forever\n")

    with pytest.raises(ConfigError):
        load_config(["--config", str(path)], environ={})


@pytest.mark.parametrize("overrides", [
    {"docker_interval_ms": 50},
    {"timeout": 0},
    {"status_capacity": 0},
    {"log_tail": 0},
    {"log_level": "chatty"},
])
def test_validate_rejects(overrides):
    with pytest.raises(ConfigError):
        Config(**overrides).validate()


def test_interval_below_minimum_from_cli(no_config_file):
    with pytest.raises(ConfigError):
        load_config(no_config_file + ["-d", "10"], environ={})


def test_non_numeric_interval_exits_with_usage(no_config_file):
    with pytest.raises(SystemExit) as exc:
        load_config(no_config_file + ["-d", "fast"], environ={})
    assert exc.value.code == 2
