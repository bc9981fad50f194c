"""Tests for settings, the user .env writer and logging setup."""

import logging

import pytest

from core.config import AppSettings, write_user_env_vars
from core.domain.language import Language
from core.logging import configure_logging


class TestAppSettings:
    def test_defaults(self):
        settings = AppSettings(_env_file=None)
        assert settings.cache_version == "v1.3.0"
        assert settings.http_retries == 3
        assert settings.http_retry_on == [408, 429, 500, 502, 503, 504]
        assert settings.default_language is Language.HINDI
        assert settings.connection_type is None

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("AMANAKSHAR_CACHE_VERSION", "v9")
        monkeypatch.setenv("AMANAKSHAR_HTTP_RETRY_ON", "[500, 503]")
        monkeypatch.setenv("AMANAKSHAR_DEFAULT_LANGUAGE", "en")
        settings = AppSettings(_env_file=None)
        assert settings.cache_version == "v9"
        assert settings.http_retry_on == [500, 503]
        assert settings.default_language is Language.ENGLISH

    def test_resolved_cache_dir(self, tmp_path, monkeypatch):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert AppSettings(_env_file=None).resolved_cache_dir() == tmp_path / "amanakshar" / "caches"
        assert AppSettings(_env_file=None, cache_dir=tmp_path / "x").resolved_cache_dir() == tmp_path / "x"


class TestWriteUserEnvVars:
    def test_merges_with_existing(self, tmp_path):
        env_path = tmp_path / "cfg" / ".env"
        write_user_env_vars({"AMANAKSHAR_ORIGIN": "https://a.test"}, env_path=env_path)
        write_user_env_vars({"AMANAKSHAR_CACHE_BACKEND": "memory"}, env_path=env_path)

        lines = env_path.read_text(encoding="utf-8").splitlines()
        assert lines[0].startswith("#")
        assert lines[1:] == ["AMANAKSHAR_CACHE_BACKEND=memory", "AMANAKSHAR_ORIGIN=https://a.test"]

    def test_settings_read_written_file(self, tmp_path):
        env_path = write_user_env_vars({"AMANAKSHAR_CACHE_VERSION": "v-file"}, env_path=tmp_path / ".env")
        assert AppSettings(_env_file=env_path).cache_version == "v-file"


class TestConfigureLogging:
    def test_single_named_handler(self):
        configure_logging("DEBUG")
        configure_logging("WARNING")
        root = logging.getLogger()
        named = [h for h in root.handlers if h.get_name() == "amanakshar-rich"]
        assert len(named) == 1
        assert root.level == logging.WARNING
        assert logging.getLogger("httpx").level == logging.WARNING

    def test_unknown_level_falls_back_to_info(self):
        configure_logging("chatty")
        assert logging.getLogger().level == logging.INFO


class TestLanguage:
    @pytest.mark.parametrize(
        "value, expected",
        [("hi", Language.HINDI), (" Hindi ", Language.HINDI), ("हिन्दी", Language.HINDI), ("EN", Language.ENGLISH)],
    )
    def test_parse(self, value, expected):
        assert Language.parse(value) is expected

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValueError, match="Unsupported language"):
            Language.parse("es")
