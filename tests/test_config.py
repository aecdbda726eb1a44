"""Tests for configuration loading."""

import pytest
from pydantic import ValidationError

from translate_mirror.config import DEFAULT_CONFIG, Settings, create_default_config, load_config


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        settings = Settings()
        assert settings.pipeline.staleness_minutes == 5
        assert settings.pipeline.processing_delay_minutes == 0
        assert settings.resolution.max_depth == 10
        assert "admin" in settings.routing.system_prefixes
        assert settings.languages == []
        assert settings.translation.openrouter_api_key == ""

    def test_api_key_falls_back_to_environment(self, monkeypatch):
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
        assert Settings().translation.openrouter_api_key == "sk-test"

    def test_rejects_out_of_range_values(self):
        with pytest.raises(ValidationError):
            Settings(pipeline={"staleness_minutes": 0})


class TestLoadConfig:
    def test_default_config_file_round_trip(self, tmp_path):
        path = tmp_path / "config.yaml"
        create_default_config(path)
        assert path.read_text(encoding="utf-8") == DEFAULT_CONFIG

        settings = load_config(path)
        assert [lang.prefix for lang in settings.languages] == ["fr", "es"]
        assert settings.pipeline.default_kinds == ["post"]
        assert settings.paths.database_path.is_absolute()

    def test_env_substitution(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MIRROR_KEY", "sk-from-env")
        path = tmp_path / "config.yaml"
        path.write_text(
            "translation:\n  openrouter_api_key: ${MIRROR_KEY}\n"
            "languages:\n  - name: German\n    prefix: de\n",
            encoding="utf-8",
        )
        settings = load_config(path)
        assert settings.translation.openrouter_api_key == "sk-from-env"
        assert settings.languages[0].name == "German"

    def test_missing_file_gives_defaults(self, tmp_path):
        settings = load_config(tmp_path / "absent.yaml")
        assert settings.project.name == "translate-mirror"

    def test_searches_working_directory(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".translate-mirror.yaml").write_text(
            "project:\n  name: from-dotfile\n", encoding="utf-8"
        )
        assert load_config().project.name == "from-dotfile"
