"""
Shared test fixtures for the Autarco scraper tests.

Provides an in-process fake of the My Autarco portal served through
``httpx.MockTransport``, credentials/settings fixtures, and a FastAPI
TestClient wired to the fake portal. All AUTARCO_* env vars are cleared and
the working directory is moved to tmp_path before each test so no .env or
autarco.toml file leaks in.

CHANGELOG:
- 2026-10-19: Initial creation
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Generator
from urllib.parse import parse_qs

import httpx
import pytest
from fastapi.testclient import TestClient

from scraper.src.models import Credentials

BASE_URL = "https://my.autarco.com"
SITE_ID = "site-1"
USERNAME = "user@example.com"
PASSWORD = "secret"
CSRF_TOKEN = "csrf-abc"

LOGIN_PAGE = f"""<!DOCTYPE html>
<html>
<head><meta name="csrf-token" content="{CSRF_TOKEN}"></head>
<body>
<form method="POST" action="{BASE_URL}/auth/login">
  <input type="hidden" name="_token" value="{CSRF_TOKEN}">
  <input type="email" name="username">
  <input type="password" name="password">
</form>
</body>
</html>
"""

_SESSION_COOKIE_RE = re.compile(r"autarco_session=([^;\s]+)")

# All ScraperSettings environment variable names, used for cleanup.
_ALL_SCRAPER_ENV_VARS = (
    "AUTARCO_USERNAME",
    "AUTARCO_PASSWORD",
    "AUTARCO_SITE_ID",
    "AUTARCO_BASE_URL",
    "AUTARCO_MIN_REFRESH_INTERVAL_S",
    "AUTARCO_BACKGROUND_REFRESH",
    "AUTARCO_REQUEST_TIMEOUT_S",
    "AUTARCO_HOST",
    "AUTARCO_PORT",
    "AUTARCO_LOG_LEVEL",
)


class FakePortal:
    """Minimal stand-in for the My Autarco portal.

    Serves the login form, accepts the test credentials, hands out session
    cookies and answers the power/energy KPI endpoints. Every request is
    recorded in :attr:`events` (``login_page``, ``login``, ``power``,
    ``energy``) and the peak number of concurrent requests is tracked.
    """

    def __init__(self) -> None:
        self.power: object = {"pv_now": 23}
        self.energy: object = {"pv_to_date": 6159}
        self.events: list[str] = []
        self.login_page = LOGIN_PAGE
        self.reject_login = False
        self.reject_with_form = False
        self.login_status: int | None = None
        self.unauthorized_stats = 0
        self.stats_status: int | None = None
        self.fail_login_with: Exception | None = None
        self.fail_stats_with: Exception | None = None
        self.delay_s = 0.0
        self.issue_session_cookie = True
        self.corrupt_body_on: str | None = None
        self.inflight = 0
        self.max_inflight = 0
        self.valid_sessions: set[str] = set()
        self._session_seq = 0

    @property
    def login_count(self) -> int:
        return self.events.count("login")

    @property
    def power_count(self) -> int:
        return self.events.count("power")

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def expire_sessions(self) -> None:
        """Forget every issued session, as the portal does on expiry."""
        self.valid_sessions.clear()

    async def handle(self, request: httpx.Request) -> httpx.Response:
        self.inflight += 1
        self.max_inflight = max(self.max_inflight, self.inflight)
        try:
            if self.delay_s:
                await asyncio.sleep(self.delay_s)
            return self._route(request)
        finally:
            self.inflight -= 1

    def _route(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        kind = self._kind(request)
        if kind is not None and kind == self.corrupt_body_on:
            self.events.append(kind)
            return httpx.Response(
                200,
                headers={"Content-Encoding": "gzip"},
                stream=httpx.ByteStream(b"not-gzip"),
            )

        if path == "/auth/login":
            if self.fail_login_with is not None:
                raise self.fail_login_with
            if request.method == "GET":
                self.events.append("login_page")
                return httpx.Response(
                    200,
                    text=self.login_page,
                    headers={"Set-Cookie": "XSRF-TOKEN=xsrf; Path=/"},
                )
            self.events.append("login")
            return self._login(request)

        prefix = f"/api/site/{SITE_ID}/kpis/"
        if path.startswith(prefix):
            kpi = path[len(prefix):]
            self.events.append(kpi)
            if self.fail_stats_with is not None:
                raise self.fail_stats_with
            return self._kpi(request, kpi)

        return httpx.Response(404)

    @staticmethod
    def _kind(request: httpx.Request) -> str | None:
        path = request.url.path
        if path == "/auth/login":
            return "login_page" if request.method == "GET" else "login"
        prefix = f"/api/site/{SITE_ID}/kpis/"
        if path.startswith(prefix):
            return path[len(prefix):]
        return None

    def _login(self, request: httpx.Request) -> httpx.Response:
        if self.login_status is not None:
            return httpx.Response(self.login_status)

        form = parse_qs(request.content.decode())
        accepted = (
            not self.reject_login
            and form.get("username") == [USERNAME]
            and form.get("password") == [PASSWORD]
            and form.get("_token") == [CSRF_TOKEN]
        )
        if not accepted:
            if self.reject_with_form:
                return httpx.Response(200, text=self.login_page)
            return httpx.Response(302, headers={"Location": f"{BASE_URL}/auth/login"})

        self._session_seq += 1
        session_id = f"sess-{self._session_seq}"
        self.valid_sessions.add(session_id)
        if not self.issue_session_cookie:
            return httpx.Response(302, headers={"Location": "/dashboard"})
        return httpx.Response(
            302,
            headers={
                "Location": "/dashboard",
                "Set-Cookie": f"autarco_session={session_id}; Path=/; HttpOnly",
            },
        )

    def _kpi(self, request: httpx.Request, kpi: str) -> httpx.Response:
        if kpi == "power" and self.unauthorized_stats > 0:
            self.unauthorized_stats -= 1
            return httpx.Response(401, json={"message": "Unauthenticated."})

        match = _SESSION_COOKIE_RE.search(request.headers.get("cookie", ""))
        if match is None or match.group(1) not in self.valid_sessions:
            return httpx.Response(302, headers={"Location": f"{BASE_URL}/auth/login"})

        if self.stats_status is not None:
            return httpx.Response(self.stats_status, text="upstream error")

        payload = self.power if kpi == "power" else self.energy
        if isinstance(payload, str):
            return httpx.Response(200, text=payload)
        return httpx.Response(200, json=payload)


class FakeClock:
    """Manually advanced clock usable as ``time.time`` or ``time.monotonic``."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(autouse=True)
def _clean_scraper_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all AUTARCO_* env vars and isolate from .env/autarco.toml files."""
    for var in _ALL_SCRAPER_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def portal() -> FakePortal:
    """A fresh fake portal."""
    return FakePortal()


@pytest.fixture()
def credentials() -> Credentials:
    """Credentials accepted by the fake portal."""
    return Credentials(username=USERNAME, password=PASSWORD, site_id=SITE_ID)


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = {
        "AUTARCO_USERNAME": USERNAME,
        "AUTARCO_PASSWORD": PASSWORD,
        "AUTARCO_SITE_ID": SITE_ID,
    }
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def settings_kwargs() -> dict[str, object]:
    """Keyword arguments for a ScraperSettings that fetches on every request."""
    return {
        "username": USERNAME,
        "password": PASSWORD,
        "site_id": SITE_ID,
        "base_url": BASE_URL,
        "min_refresh_interval_s": 0,
    }


@pytest.fixture()
def client(
    portal: FakePortal,
    settings_kwargs: dict[str, object],
) -> Generator[TestClient, None, None]:
    """FastAPI TestClient whose portal requests go to the fake portal.

    Uses a context manager so the application lifespan runs.
    """
    from scraper.src.api.main import create_app
    from scraper.src.config import ScraperSettings

    app = create_app(ScraperSettings(**settings_kwargs), transport=portal.transport())
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def wall_clock() -> FakeClock:
    """Unix-time clock fixed at 2022-08-22 18:57:00 UTC."""
    return FakeClock(1661194620.0)


@pytest.fixture()
def monotonic() -> FakeClock:
    """Monotonic clock for aging the cached record."""
    return FakeClock(1000.0)
