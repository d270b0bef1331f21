"""Unit tests for settings loading."""

import pytest
import yaml
from pathlib import Path

from epictm.config import Settings, load_settings
from epictm.recovery import InvalidItemError


def _write_config(path: Path, data) -> Path:
    with open(path, 'w', encoding='utf-8') as f:
        yaml.dump(data, f)
    return path


class TestLoadSettings:
    """Test settings precedence: defaults, file, environment."""

    def test_defaults(self, tmp_path, monkeypatch):
        """Without file or environment the defaults apply."""
        monkeypatch.chdir(tmp_path)
        settings = load_settings(environ={})

        assert settings.base_path == Path.cwd()
        assert settings.root_name == "epictm"
        assert settings.require_file_association is True
        assert settings.quarantine_corrupt is True

    def test_file_in_working_directory(self, tmp_path, monkeypatch):
        """epictm.yml in the working directory is picked up."""
        monkeypatch.chdir(tmp_path)
        _write_config(tmp_path / "epictm.yml", {"root_name": ".plans", "require_file_association": False})

        settings = load_settings(environ={})
        assert settings.root_name == ".plans"
        assert settings.require_file_association is False

    def test_environment_overrides_file(self, tmp_path):
        """EPICTM_* variables win over file values."""
        config = _write_config(tmp_path / "custom.yml", {"root_name": "from-file", "base_path": str(tmp_path)})
        environ = {"EPICTM_ROOT_NAME": "from-env", "EPICTM_REQUIRE_FILES": "false"}

        settings = load_settings(config, environ=environ)
        assert settings.root_name == "from-env"
        assert settings.base_path == tmp_path
        assert settings.require_file_association is False

    def test_empty_environment_values_are_ignored(self, tmp_path):
        """An empty variable does not override the file."""
        config = _write_config(tmp_path / "custom.yml", {"root_name": "from-file"})
        settings = load_settings(config, environ={"EPICTM_ROOT_NAME": ""})
        assert settings.root_name == "from-file"

    def test_empty_file(self, tmp_path):
        """An empty config file means defaults."""
        config = tmp_path / "empty.yml"
        config.write_text("", encoding="utf-8")
        assert load_settings(config, environ={}).root_name == "epictm"

    def test_missing_explicit_file(self, tmp_path):
        """A named config file must exist."""
        with pytest.raises(InvalidItemError, match="not found"):
            load_settings(tmp_path / "nope.yml", environ={})

    def test_malformed_yaml(self, tmp_path):
        """YAML syntax errors are reported as invalid settings."""
        config = tmp_path / "bad.yml"
        config.write_text("root_name: [unclosed", encoding="utf-8")
        with pytest.raises(InvalidItemError, match="YAML syntax error"):
            load_settings(config, environ={})

    def test_non_mapping_document(self, tmp_path):
        """The config document must be a mapping."""
        config = _write_config(tmp_path / "list.yml", ["a", "b"])
        with pytest.raises(InvalidItemError, match="mapping"):
            load_settings(config, environ={})

    def test_unknown_key(self, tmp_path):
        """Unknown settings are refused."""
        config = _write_config(tmp_path / "extra.yml", {"colour": "blue"})
        with pytest.raises(InvalidItemError, match="Invalid settings"):
            load_settings(config, environ={})

    def test_settings_model(self):
        """The root name must not be empty."""
        with pytest.raises(ValueError):
            Settings(root_name="")
