"""
Session manager for the My Autarco portal.

Owns the authenticated relationship with the upstream provider. A login
fetches the portal's login form, extracts its CSRF token, submits the
credentials, and keeps the resulting session cookies. There is no local
expiry timer: the stats fetcher calls :meth:`SessionManager.invalidate` when
a data request comes back unauthorized, and the next
:meth:`SessionManager.ensure_session` logs in again.

Operations:
- ensure_session(): Return the held session, logging in first if needed.
- invalidate(): Mark the held session invalid (no network activity).
- open_client(session): Build an httpx client carrying the session cookies.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

import httpx
from bs4 import BeautifulSoup

from scraper.src.errors import AuthError
from scraper.src.models import Credentials

logger = logging.getLogger(__name__)

LOGIN_PATH = "/auth/login"
"""Path of the portal login form; the form posts back to the same path."""

_REJECTED_STATUSES = frozenset({401, 403, 419, 422})
"""Login responses that mean the credentials (or the CSRF token) were refused."""

_DEFAULT_HEADERS = {
    "Accept": "text/html,application/json;q=0.9,*/*;q=0.8",
    "User-Agent": "autarco-scraper/0.1",
}


@dataclass
class Session:
    """Cookie material of one successful login.

    Attributes:
        cookies: Cookies set by the portal during login.
        established_at: Unix time of the login.
        valid: Cleared by :meth:`SessionManager.invalidate`.
    """

    cookies: httpx.Cookies
    established_at: float
    valid: bool = True


def extract_csrf_token(html: str) -> str | None:
    """Return the CSRF token embedded in the login page, or None.

    Looks for the hidden ``_token`` form input first and falls back to the
    ``csrf-token`` meta tag.
    """
    soup = BeautifulSoup(html, "html.parser")
    field = soup.find("input", attrs={"name": "_token"})
    if field is not None and field.get("value"):
        return field["value"]
    meta = soup.find("meta", attrs={"name": "csrf-token"})
    if meta is not None and meta.get("content"):
        return meta["content"]
    return None


def redirects_to_login(response: httpx.Response) -> bool:
    """True if *response* is a redirect back to the portal login page."""
    if not response.is_redirect:
        return False
    location = httpx.URL(response.headers["location"])
    return location.path.rstrip("/") == LOGIN_PATH


class SessionManager:
    """Maintains at most one authenticated session with the portal.

    Not safe for unsynchronised concurrent use on its own; the
    :class:`~scraper.src.fetcher.StatsFetcher` serialises every call behind
    its fetch lock.

    Args:
        credentials: Account and site to log in with.
        base_url: Portal base URL, e.g. ``https://my.autarco.com``.
        timeout_s: Timeout for each upstream request.
        transport: Optional httpx transport, used by tests to stand in for
            the portal.
        clock: Source of unix time for ``Session.established_at``.
    """

    def __init__(
        self,
        credentials: Credentials,
        *,
        base_url: str,
        timeout_s: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._credentials = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._transport = transport
        self._clock = clock
        self._session: Session | None = None
        self._login_count = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def is_valid(self) -> bool:
        """True if a session is held and has not been invalidated."""
        return self._session is not None and self._session.valid

    @property
    def login_count(self) -> int:
        """Number of login attempts made since startup."""
        return self._login_count

    async def ensure_session(self) -> Session:
        """Return a session believed to be valid, logging in if necessary.

        At most one login attempt is made per call; failures are raised, not
        retried.

        Returns:
            The current valid :class:`Session`.

        Raises:
            AuthError: If the login is rejected, the portal is unreachable,
                or the login flow returns something unexpected.
        """
        if self._session is not None and self._session.valid:
            return self._session

        self._session = await self._login()
        return self._session

    def invalidate(self) -> None:
        """Mark the held session invalid. Idempotent."""
        if self._session is None or not self._session.valid:
            logger.debug("No valid session to invalidate")
            return
        self._session.valid = False
        logger.info("Upstream session invalidated, next use will log in again")

    def open_client(self, session: Session | None = None) -> httpx.AsyncClient:
        """Build an httpx client for the portal, carrying *session*'s cookies.

        Redirects are never followed so that a bounce to the login page can be
        recognised as an expired session.
        """
        return httpx.AsyncClient(
            base_url=self._base_url,
            cookies=session.cookies if session is not None else None,
            headers=_DEFAULT_HEADERS,
            timeout=self._timeout_s,
            follow_redirects=False,
            transport=self._transport,
        )

    # ------------------------------------------------------------------
    # Login flow
    # ------------------------------------------------------------------

    async def _login(self) -> Session:
        """Run the login form flow once and return a fresh session."""
        self._login_count += 1
        logger.info(
            "Logging in to %s as %s (attempt %d)",
            self._base_url,
            self._credentials.username,
            self._login_count,
        )

        try:
            async with self.open_client() as client:
                page = await client.get(LOGIN_PATH)
                if page.status_code != 200:
                    raise AuthError(
                        f"Login page returned HTTP {page.status_code}",
                        reason=AuthError.UNEXPECTED_RESPONSE,
                    )

                token = extract_csrf_token(page.text)
                if token is None:
                    raise AuthError(
                        "Login page does not contain a CSRF token",
                        reason=AuthError.UNEXPECTED_RESPONSE,
                    )

                response = await client.post(
                    LOGIN_PATH,
                    data={
                        "username": self._credentials.username,
                        "password": self._credentials.password.get_secret_value(),
                        "_token": token,
                    },
                )
                _check_login_response(response)
                # The login page already sets cookies, so only the POST counts.
                if not response.cookies:
                    raise AuthError(
                        "Login response did not set a session cookie",
                        reason=AuthError.UNEXPECTED_RESPONSE,
                    )
                cookies = httpx.Cookies(client.cookies)
        except httpx.TransportError as exc:
            logger.warning("Login failed, portal unreachable: %s", exc)
            raise AuthError(
                f"Portal unreachable during login: {exc}",
                reason=AuthError.UNREACHABLE,
            ) from exc
        except httpx.RequestError as exc:
            logger.warning("Login failed, unusable portal response: %s", exc)
            raise AuthError(
                f"Unusable portal response during login: {exc}",
                reason=AuthError.UNEXPECTED_RESPONSE,
            ) from exc
        except AuthError as exc:
            logger.warning("Login failed (%s): %s", exc.reason, exc)
            raise

        logger.info("Logged in to %s", self._base_url)
        return Session(cookies=cookies, established_at=self._clock())


def _check_login_response(response: httpx.Response) -> None:
    """Raise AuthError unless *response* indicates a successful login.

    A successful login redirects away from the login page (or, for some
    deployments, answers 2xx without re-rendering the login form).
    """
    status = response.status_code
    if status in _REJECTED_STATUSES or redirects_to_login(response):
        raise AuthError(
            f"Credentials rejected by the portal (HTTP {status})",
            reason=AuthError.REJECTED,
        )

    if response.is_redirect:
        return

    if response.is_success:
        # The form is rendered again when the login did not go through.
        if extract_csrf_token(response.text) is not None:
            raise AuthError(
                "Credentials rejected by the portal (login form returned)",
                reason=AuthError.REJECTED,
            )
        return

    raise AuthError(
        f"Unexpected login response HTTP {status}",
        reason=AuthError.UNEXPECTED_RESPONSE,
    )
