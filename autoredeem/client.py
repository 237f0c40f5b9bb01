"""
SHiFT protocol client.

Emulates a browser session against shift.gearboxsoftware.com: cookie jar,
CSRF tokens scraped from HTML, form posts with redirects handled manually.
Check and redeem calls share one throttle timestamp so consecutive requests
are always at least ``request_delay`` seconds apart.
"""

import time
from typing import Callable, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from . import interpreter
from .config import Config
from .errors import (
    InvalidCredentials,
    LoginFailed,
    NotAuthenticated,
    RateLimitExceeded,
    ShiftError,
    SiteParseError,
    SiteUnavailable,
    wrap_request_error,
)
from .log import log_debug, log_info, log_warning
from .models import CodeCheckResult, LoginResult, RedeemResult, RedemptionForm, Session


class ShiftClient:
    """Login, code check and code redemption against the SHiFT website"""

    def __init__(self, config: Config, http: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.http = http or self._build_http_session()
        self._sleep = sleep
        self._clock = clock
        self._session: Optional[Session] = None
        self._last_request_time: Optional[float] = None
        self._debugger = interpreter.HTMLDebugger(config.debug_dir) if config.debug else None

    def _build_http_session(self) -> requests.Session:
        http = requests.Session()
        http.headers.update({
            'User-Agent': self.config.user_agent,
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.9',
            'Connection': 'keep-alive',
        })

        # Transport-level retries for idempotent requests only; POSTs are never replayed
        adapter = HTTPAdapter(
            pool_connections=10,
            pool_maxsize=20,
            max_retries=Retry(
                total=self.config.max_retries,
                backoff_factor=0.3,
                status_forcelist=[500, 502, 503, 504],
                raise_on_status=False,
            ),
        )
        http.mount('http://', adapter)
        http.mount('https://', adapter)
        return http

    # -------------------------------
    # Session state
    # -------------------------------

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def set_session(self, session: Session):
        """Adopt an existing session (e.g. restored from storage)"""
        self._session = session
        self.http.cookies.clear()
        domain = self.config.base_url.split("://", 1)[-1]
        for name, value in session.cookies.items():
            self.http.cookies.set(name, value, domain=domain, path='/')

    def clear_session(self):
        self._session = None
        self.http.cookies.clear()

    def is_authenticated(self) -> bool:
        return self._session is not None and not self._session.is_expired()

    def _cookie_dict(self):
        # Later cookies win when the jar holds the same name for several domains
        cookies = {}
        for cookie in self.http.cookies:
            cookies[cookie.name] = cookie.value
        return cookies

    def _restore_cookies(self, cookies):
        self.http.cookies.clear()
        for cookie in cookies:
            self.http.cookies.set_cookie(cookie)

    def _deduplicate_cookies(self):
        """Remove duplicate cookies to prevent 'multiple cookies with name' errors"""
        seen = {}
        for cookie in list(self.http.cookies):
            seen[cookie.name] = cookie

        if len(seen) != len(self.http.cookies):
            self.http.cookies.clear()
            for cookie in seen.values():
                self.http.cookies.set_cookie(cookie)

    # -------------------------------
    # Throttling
    # -------------------------------

    def _throttle(self):
        """Wait until request_delay has passed since the previous check/redeem call"""
        if self._last_request_time is not None:
            elapsed = self._clock() - self._last_request_time
            wait_time = self.config.request_delay - elapsed
            if wait_time > 0:
                self._sleep(wait_time)
        self._last_request_time = self._clock()

    def _with_rate_limit_retry(self, send: Callable[[], requests.Response], what: str) -> requests.Response:
        """Send a throttled request, backing off and retrying on 429 up to rate_limit_retries times"""
        attempts = 0
        while True:
            self._throttle()
            resp = send()
            if resp.status_code != 429:
                return resp

            attempts += 1
            if attempts > self.config.rate_limit_retries:
                raise RateLimitExceeded(
                    f"Server error: rate limited (429) during {what} after {self.config.rate_limit_retries} retries",
                    status_code=429,
                )
            log_warning(
                f"Rate limited (429) during {what}, waiting {self.config.rate_limit_delay:.0f} seconds "
                f"before retry {attempts}/{self.config.rate_limit_retries}"
            )
            self._sleep(self.config.rate_limit_delay)

    def _snapshot(self, html: str, prefix: str):
        if self._debugger is None:
            return
        path = self._debugger.save_html(html, prefix)
        if path:
            log_warning(f"DEBUG: Saved HTML to {path}")
        for text in interpreter.alert_texts(html):
            log_warning(f"DEBUG: Alert text: '{text}'")

    # -------------------------------
    # Login
    # -------------------------------

    def login(self, email: str, password: str) -> LoginResult:
        """Authenticate with the SHiFT website; never raises

        The current session and its cookies are only replaced when the new
        login succeeds.
        """
        previous_cookies = list(self.http.cookies)
        try:
            session = self._login(email, password)
        except ShiftError as e:
            self._restore_cookies(previous_cookies)
            log_warning(f"Login failed: {e.message}")
            return LoginResult(success=False, error=e)
        except requests.RequestException as e:
            self._restore_cookies(previous_cookies)
            error = wrap_request_error(e, "login")
            log_warning(f"Login failed: {error.message}")
            return LoginResult(success=False, error=error)

        self._session = session
        log_info("Successfully logged into SHiFT")
        return LoginResult(success=True, session=session)

    def _login(self, email: str, password: str) -> Session:
        base_url = self.config.base_url
        # The login handshake runs on an empty jar
        self.http.cookies.clear()

        # Step 1: home page for the initial cookies and CSRF tokens
        resp = self.http.get(f"{base_url}/home", timeout=self.config.timeout)
        log_debug(f"Login page status: {resp.status_code}")
        if not 200 <= resp.status_code < 300:
            raise SiteUnavailable(f"Failed to load login page: {resp.status_code}", status_code=resp.status_code)

        _, form_token = interpreter.extract_tokens(resp.text)
        log_debug(f"Found authenticity token: {form_token[:20]}...")

        # Step 2: submit the login form without following the redirect
        login_data = {
            'utf8': '✓',
            'authenticity_token': form_token,
            'user[email]': email,
            'user[password]': password,
            'commit': 'SIGN IN',
        }
        headers = {
            'Content-Type': 'application/x-www-form-urlencoded',
            'Origin': base_url,
            'Referer': f"{base_url}/home",
        }
        resp = self.http.post(
            f"{base_url}/sessions",
            data=login_data,
            headers=headers,
            timeout=self.config.timeout,
            allow_redirects=False,
        )

        # Step 3: classify the response
        location = resp.headers.get('Location', '')
        if resp.status_code == 302 and '/account' in location:
            return Session.create(self._cookie_dict(), days=self.config.session_days)

        if resp.status_code == 200:
            body = resp.text
            if interpreter.matches_marker(body, interpreter.INVALID_CREDENTIALS_MARKER):
                raise InvalidCredentials("Invalid email or password", status_code=200)
            # Some HTTP stacks follow the redirect and hand back the account page
            if interpreter.matches_marker(body, *interpreter.AUTHENTICATED_MARKERS):
                return Session.create(self._cookie_dict(), days=self.config.session_days)

        raise LoginFailed(f"Login failed with status {resp.status_code}", status_code=resp.status_code)

    # -------------------------------
    # Code check
    # -------------------------------

    def check_code(self, code: str) -> CodeCheckResult:
        """Look a code up and collect its redemption forms"""
        if not self.is_authenticated():
            error = NotAuthenticated("Not authenticated")
            return CodeCheckResult(valid=False, reason="Not authenticated", error=error)

        base_url = self.config.base_url
        headers = {
            'Accept': '*/*',
            'X-Requested-With': 'XMLHttpRequest',
            'Referer': f"{base_url}/rewards",
        }

        try:
            resp = self._with_rate_limit_retry(
                lambda: self.http.get(
                    f"{base_url}/entitlement_offer_codes?code={quote(code)}",
                    headers=headers,
                    timeout=self.config.timeout,
                ),
                f"check of {code}",
            )
        except ShiftError as e:
            return CodeCheckResult(valid=False, reason=e.message, error=e)
        except requests.RequestException as e:
            error = wrap_request_error(e, f"check of {code}")
            return CodeCheckResult(valid=False, reason=error.message, error=error)

        if not 200 <= resp.status_code < 300:
            return CodeCheckResult(valid=False, reason=f"HTTP {resp.status_code}")

        html = resp.text
        if interpreter.matches_marker(html, interpreter.INVALID_CODE_MARKER):
            return CodeCheckResult(valid=False, reason="Invalid code")
        if interpreter.matches_marker(html, interpreter.ALREADY_REDEEMED_MARKER):
            return CodeCheckResult(valid=False, reason="Already redeemed")
        if interpreter.matches_marker(html, *interpreter.EXPIRED_MARKERS):
            return CodeCheckResult(valid=False, reason="Code expired")

        try:
            forms = interpreter.extract_forms(html)
        except SiteParseError as e:
            self._snapshot(html, "check_incomplete_forms")
            log_warning(f"Check of {code}: {e.message}")
            return CodeCheckResult(valid=False, reason=e.message, error=e)
        if not forms:
            self._snapshot(html, "check_no_forms")
        log_debug(f"Check of {code} returned {len(forms)} redemption form(s)")
        return CodeCheckResult(valid=True, forms=forms)

    # -------------------------------
    # Redemption
    # -------------------------------

    def redeem_code(self, form: RedemptionForm) -> RedeemResult:
        """Submit one redemption form"""
        if not self.is_authenticated():
            return RedeemResult(success=False, code=form.code, reason="Not authenticated",
                                error=NotAuthenticated("Not authenticated"))

        base_url = self.config.base_url
        form_data = {
            'utf8': '✓',
            'authenticity_token': form.token,
            'archway_code_redemption[code]': form.code,
            'archway_code_redemption[check]': form.check,
            'archway_code_redemption[service]': form.service,
            'archway_code_redemption[title]': form.title,
            'commit': f"Redeem for {form.platform}",
        }
        # Mimic a real browser form submission, not an AJAX request
        headers = {
            'Content-Type': 'application/x-www-form-urlencoded',
            'Origin': base_url,
            'Referer': f"{base_url}/rewards",
        }

        self._deduplicate_cookies()
        try:
            resp = self._with_rate_limit_retry(
                lambda: self.http.post(
                    f"{base_url}/code_redemptions",
                    data=form_data,
                    headers=headers,
                    timeout=self.config.timeout,
                    allow_redirects=False,
                ),
                f"redemption of {form.code} on {form.platform}",
            )
        except ShiftError as e:
            return RedeemResult(success=False, code=form.code, reason=e.message, error=e)
        except requests.RequestException as e:
            error = wrap_request_error(e, f"redemption of {form.code}")
            return RedeemResult(success=False, code=form.code, reason=error.message, error=error)

        log_debug(f"Redemption POST status={resp.status_code} location={resp.headers.get('Location')}")

        if resp.status_code == 302:
            location = resp.headers.get('Location', '')
            if '/rewards' in location or '/code_redemptions/' in location:
                return RedeemResult(success=True, code=form.code, game=form.game, platform=form.platform)

        html = resp.text
        if interpreter.matches_marker(html, interpreter.REDEEMED_MARKER):
            return RedeemResult(success=False, code=form.code, reason="Already redeemed")
        if interpreter.matches_marker(html, *interpreter.EXPIRED_MARKERS):
            return RedeemResult(success=False, code=form.code, reason="Code expired")
        if interpreter.matches_marker(html, interpreter.REWARDS_PAGE_MARKER) or resp.status_code == 200:
            return RedeemResult(success=True, code=form.code, game=form.game, platform=form.platform)

        self._snapshot(html, "redemption_unknown")
        return RedeemResult(success=False, code=form.code, reason="Unknown error")

    # -------------------------------
    # Connectivity
    # -------------------------------

    def check_connectivity(self) -> bool:
        """HEAD request to check the SHiFT website is reachable"""
        try:
            self.http.head(self.config.base_url, timeout=self.config.timeout, allow_redirects=False)
            return True
        except requests.RequestException as e:
            log_debug(f"Connectivity check failed: {e}")
            return False
