import pytest
from pydantic import ValidationError
from dprov.CONFIG.settings import Settings
from dprov.errors import ProvisionError


def test_defaults_without_env(tmp_path):
    settings = Settings.load(str(tmp_path / "missing.env"), environ={})
    assert settings.engine == "auto"
    assert settings.retries == 0
    assert settings.step_timeout is None
    assert settings.preflight is False


def test_env_file_then_environment_then_overrides(tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("DPROV_ENGINE=podman\nDPROV_RETRIES=1\nDPROV_PREFLIGHT=true\nUNRELATED=x\n")

    settings = Settings.load(str(env_file), environ={"DPROV_RETRIES": "3", "DPROV_STEP_TIMEOUT": "600"})
    assert settings.engine == "podman"
    assert settings.retries == 3
    assert settings.step_timeout == 600.0
    assert settings.preflight is True

    overridden = Settings.load(str(env_file), environ={}, engine="docker", retries=None)
    assert overridden.engine == "docker"
    assert overridden.retries == 1


def test_negative_retries_rejected():
    with pytest.raises(ValidationError):
        Settings(retries=-1)


def test_invalid_environment_value_is_a_provision_error():
    with pytest.raises(ProvisionError, match="invalid setting retries"):
        Settings.load(None, environ={"DPROV_RETRIES": "many"})
