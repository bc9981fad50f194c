"""Tests for the `amanakshar` Typer application."""

import httpx
import pytest
from typer.testing import CliRunner

import cli.main as cli_main
from conftest import ORIGIN, FakeSite

runner = CliRunner()


@pytest.fixture
def env(monkeypatch, tmp_path):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("AMANAKSHAR_ORIGIN", ORIGIN)
    monkeypatch.setenv("AMANAKSHAR_CACHE_BACKEND", "disk")
    monkeypatch.setenv("AMANAKSHAR_CACHE_DIR", str(tmp_path / "caches"))
    monkeypatch.setenv("AMANAKSHAR_CACHE_VERSION", "v-cli")
    monkeypatch.setenv("AMANAKSHAR_HTTP_RETRY_DELAY_SECONDS", "0")
    monkeypatch.setenv("AMANAKSHAR_LOG_LEVEL", "WARNING")
    return tmp_path


@pytest.fixture
def cli_site(monkeypatch):
    site = FakeSite()

    def fake_builder(settings=None, *, extra_headers=None, transport=None):
        return httpx.AsyncClient(transport=httpx.MockTransport(site.handler))

    monkeypatch.setattr(cli_main, "build_async_client", fake_builder)
    return site


def _invoke(*args, **kwargs):
    return runner.invoke(cli_main.app, list(args), **kwargs)


class TestRoutes:
    def test_lists_all_routes(self, env):
        result = _invoke("routes")
        assert result.exit_code == 0
        assert "poem-page" in result.output
        assert "stale-while-revalidate" in result.output

    def test_highlights_match(self, env):
        result = _invoke("routes", "/kavita/dhoop", "--html")
        assert result.exit_code == 0


class TestFetch:
    def test_network_then_cache(self, env, cli_site):
        cli_site.add("/kavita/dhoop", "<html><head><title>धूप</title></head></html>")

        online = _invoke("fetch", "/kavita/dhoop", "--html")
        assert online.exit_code == 0, online.output
        assert "network" in online.output

        cli_site.online = False
        offline = _invoke("fetch", "/kavita/dhoop", "--html")
        assert offline.exit_code == 0, offline.output
        assert "cache" in offline.output

    def test_offline_page(self, env, cli_site):
        cli_site.online = False
        result = _invoke("fetch", "/parichay", "--html")
        assert result.exit_code == 0
        assert "503" in result.output
        assert "offline" in result.output


class TestLifecycle:
    def test_install_failure_exits_nonzero(self, env, cli_site):
        result = _invoke("install")
        assert result.exit_code == 1
        assert "Install failed" in result.output

    def test_activate_and_caches(self, env, cli_site, monkeypatch):
        cli_site.add("/kavita/dhoop", "<html>धूप</html>")
        assert _invoke("poems", "cache", "dhoop").exit_code == 0

        monkeypatch.setenv("AMANAKSHAR_CACHE_VERSION", "v-next")
        listing = _invoke("caches")
        assert "amanakshar-poems-v-cli" in listing.output
        assert "stale" in listing.output

        result = _invoke("activate")
        assert result.exit_code == 0
        assert "amanakshar-poems-v-cli" in result.output


class TestPoemsAndSync:
    def test_like_then_sync(self, env, cli_site):
        cli_site.add("/api/poems/dhoop/like", '{"likes": 1}', content_type="application/json")

        assert _invoke("poems", "like", "dhoop").exit_code == 0
        result = _invoke("sync", "likes")

        assert result.exit_code == 0
        assert "Replayed 1" in result.output
        assert cli_site.count("/api/poems/dhoop/like", method="POST") == 1

    def test_list_and_clear(self, env, cli_site):
        cli_site.add("/kavita/nadi", "<html>नदी</html>")
        _invoke("poems", "cache", "nadi")

        listed = _invoke("poems", "list")
        assert "nadi" in listed.output

        assert _invoke("poems", "clear").exit_code == 0
        assert "nadi" not in _invoke("poems", "list").output

    def test_list_with_titles(self, env, cli_site):
        cli_site.add("/kavita/dhoop", "<html><head><title>धूप की कविता</title></head></html>")
        assert _invoke("poems", "cache", "dhoop").exit_code == 0

        result = _invoke("poems", "list", "--titles")
        assert result.exit_code == 0, result.output
        assert "dhoop" in result.output
        assert "धूप की कविता" in result.output

    def test_sync_poems_offline_fails(self, env, cli_site):
        cli_site.online = False
        assert _invoke("sync", "poems").exit_code == 1


class TestPushAndPreload:
    def test_push_renders_notification(self, env, cli_site):
        result = _invoke("push", '{"title": "नई कविता", "body": "धूप"}')
        assert result.exit_code == 0
        assert "नई कविता" in result.output

    def test_preload_reports_failures(self, env, cli_site):
        cli_site.add("/models/a.glb", b"glTF", content_type="model/gltf-binary")
        result = _invoke("preload", "/models/a.glb", "/models/missing.glb", "--type", "model")
        assert result.exit_code == 1
        assert "OK" in result.output
        assert "FAIL" in result.output

    def test_warmup_prints_link_tags(self, env, cli_site):
        result = _invoke("warmup", "https://cdn.amanakshar.test/a.glb", "https://cdn.amanakshar.test/b.glb")
        assert result.exit_code == 0
        assert result.output.count('rel="preconnect"') == 1


class TestApi:
    def test_get_prints_json(self, env, cli_site):
        cli_site.add("/api/events", '[{"id": 1}]', content_type="application/json")
        result = _invoke("api", "get", "/api/events")
        assert result.exit_code == 0
        assert '"id": 1' in result.output

    def test_error_is_localized(self, env, cli_site, monkeypatch):
        monkeypatch.setenv("AMANAKSHAR_DEFAULT_LANGUAGE", "en")
        result = _invoke("api", "get", "/api/missing")
        assert result.exit_code == 1
        assert "Content not found" in result.output


class TestDoctor:
    def test_setup_writes_user_env(self, env):
        result = _invoke("doctor", "setup", input="https://staging.amanakshar.test\nmemory\n3g\nen\n")
        assert result.exit_code == 0, result.output

        env_file = env / "config" / "amanakshar" / ".env"
        content = env_file.read_text(encoding="utf-8")
        assert "AMANAKSHAR_ORIGIN=https://staging.amanakshar.test" in content
        assert "AMANAKSHAR_CONNECTION_TYPE=3g" in content

    def test_setup_rejects_bad_backend(self, env):
        result = _invoke("doctor", "setup", input="https://x.test\nredis\n\nhi\n")
        assert result.exit_code != 0

    def test_setup_accepts_language_name(self, env):
        result = _invoke("doctor", "setup", input="https://x.test\nmemory\n\nEnglish\n")
        assert result.exit_code == 0, result.output
        content = (env / "config" / "amanakshar" / ".env").read_text(encoding="utf-8")
        assert "AMANAKSHAR_DEFAULT_LANGUAGE=en" in content
