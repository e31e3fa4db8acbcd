"""Tests for chromesec/api.py"""

import asyncio
import json

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from chromesec import api
from chromesec.browser import BrowserSession
from chromesec.identity import IdentityProvider
from chromesec.proxy import ProxyRotator

URL = "http://target.test/page"


@pytest.fixture
def client(config, driver, monkeypatch):
    monkeypatch.setattr(api, "config", config)
    monkeypatch.setattr(api, "driver", driver)
    monkeypatch.setattr(api, "identity", IdentityProvider(agents=["UA-Api"]))
    monkeypatch.setattr(api, "rotator", ProxyRotator())
    monkeypatch.setattr(api, "session", None)
    monkeypatch.setattr(api, "session_lock", asyncio.Lock())
    with TestClient(api.app) as c:
        yield c


def test_health(client) -> None:
    resp = client.get("/api/health")
    assert resp.status_code == 200
    assert resp.json()["session"] == "none"


def test_scan_without_session(client) -> None:
    resp = client.post("/api/scan", json={"url": URL})
    assert resp.status_code == 409


def test_scan_rejects_non_http_url(client) -> None:
    resp = client.post("/api/scan", json={"url": "file:///etc/passwd"})
    assert resp.status_code == 400


def test_launch_scan_close_flow(client, driver, config) -> None:
    resp = client.post("/api/session/launch", json={})
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "launched"
    assert body["user_agent"] == "UA-Api"
    assert body["proxy"] is None

    resp = client.post("/api/session/launch", json={})
    assert resp.status_code == 409

    resp = client.post("/api/scan", json={"url": URL})
    assert resp.status_code == 200
    result = resp.json()
    assert result["ok"] is True
    assert result["error"] is None
    assert result["report"]["url"] == URL
    assert result["report"]["results"][-1] == {
        "testType": "CSRF", "payload": "Token Check", "isVulnerable": True,
    }

    reports = client.get("/api/reports").json()["reports"]
    assert len(reports) == 1
    assert (config.reports_dir / f"{reports[0]}.json").exists()

    assert client.post("/api/session/close").json()["status"] == "closed"
    assert client.post("/api/session/close").json()["status"] == "closed"
    assert driver.browsers[0].closed is True

    assert client.post("/api/scan", json={"url": URL}).status_code == 409


def test_launch_overrides(client, driver) -> None:
    resp = client.post("/api/session/launch", json={"headless": False, "disable_web_security": False})
    assert resp.status_code == 200
    _, args, options = driver.launches[0]
    assert options.headless is False
    assert "--disable-web-security" not in args
    assert "--no-sandbox" in args


def test_launch_failure(client, driver) -> None:
    driver.fail_with = RuntimeError("no chrome here")
    resp = client.post("/api/session/launch", json={})
    assert resp.status_code == 502
    assert "no chrome here" in resp.json()["detail"]
    assert client.get("/api/session").json() == {"status": "none"}


def test_unsupported_platform(client, config, monkeypatch) -> None:
    config.launch.executable_path = None
    original = api.BrowserSession

    def session_on_plan9(**kwargs):
        return original(platform_tag="plan9", **kwargs)

    monkeypatch.setattr(api, "BrowserSession", session_on_plan9)
    resp = client.post("/api/session/launch", json={})
    assert resp.status_code == 500


def test_proxies_rotate_and_are_masked(client, driver) -> None:
    resp = client.post("/api/proxies", json={"proxies": [
        {"address": "http://p1:8080"},
        {"address": "http://p2:8080", "username": "u", "password": "pw"},
    ]})
    assert resp.json() == {"status": "ok", "count": 2}

    cfg = client.get("/api/config").json()
    assert cfg["proxies"][1]["password"] == "****"

    client.post("/api/session/launch", json={})
    client.post("/api/session/close")
    client.post("/api/session/launch", json={})

    assert "--proxy-server=http://p1:8080" in driver.launches[0][1]
    assert "--proxy-server=http://p2:8080" in driver.launches[1][1]
    assert "--proxy-auth=u:pw" in driver.launches[1][1]


def test_invalid_proxy(client) -> None:
    resp = client.post("/api/proxies", json={"proxies": [{"address": "  "}]})
    assert resp.status_code == 400


def test_config_update_is_applied_and_saved(client, config, tmp_path, monkeypatch) -> None:
    path = tmp_path / "saved.json"
    monkeypatch.setenv("CHROMESEC_CONFIG", str(path))
    resp = client.post("/api/config", json={"headless": False, "probe_timeout_s": 12.5})
    assert resp.status_code == 200
    body = resp.json()
    assert body["headless"] is False
    assert body["probe_timeout_s"] == 12.5
    assert config.launch.headless is False
    assert json.loads(path.read_text()) == {"headless": False, "probe_timeout_s": 12.5}


class SlowDriver:
    """Driver whose launch yields to the event loop before returning."""

    def __init__(self, inner):
        self.inner = inner

    async def launch(self, executable_path, args, options):
        await asyncio.sleep(0.05)
        return await self.inner.launch(executable_path, args, options)


@pytest.mark.asyncio
async def test_concurrent_launches_start_one_browser(config, driver, monkeypatch) -> None:
    monkeypatch.setattr(api, "config", config)
    monkeypatch.setattr(api, "driver", SlowDriver(driver))
    monkeypatch.setattr(api, "identity", IdentityProvider(agents=["UA-Api"]))
    monkeypatch.setattr(api, "rotator", ProxyRotator())
    monkeypatch.setattr(api, "session", None)
    monkeypatch.setattr(api, "session_lock", asyncio.Lock())

    results = await asyncio.gather(
        api.launch_session(api.LaunchRequest()),
        api.launch_session(api.LaunchRequest()),
        return_exceptions=True,
    )

    launched = [r for r in results if isinstance(r, dict)]
    rejected = [r for r in results if isinstance(r, HTTPException)]
    assert len(launched) == 1
    assert [r.status_code for r in rejected] == [409]
    assert len(driver.browsers) == 1

    await api.close_session()
    assert driver.browsers[0].closed is True


def test_failed_launch_releases_profile(client, driver) -> None:
    driver.fail_with = RuntimeError("no chrome here")
    before = set(BrowserSession._live_profiles)
    assert client.post("/api/session/launch", json={}).status_code == 502
    assert BrowserSession._live_profiles == before
