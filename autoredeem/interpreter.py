"""
HTML interpretation for the SHiFT website.

All knowledge of the site's markup and message wording lives here, so the
protocol client only deals with requests and the orchestrator only deals
with typed results. When Gearbox changes the page layout this is the one
module that needs to follow.
"""

import hashlib
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from bs4 import BeautifulSoup

from .config import PLATFORM_CODES, TITLE_DISPLAY_NAMES
from .errors import AuthTokenMissing, SiteParseError
from .log import log_warning
from .models import RedemptionForm

# Login page
INVALID_CREDENTIALS_MARKER = "Invalid email or password"
AUTHENTICATED_MARKERS = (
    "Sign Out",
    "My Rewards",
    'href="/account"',
    "CODE HISTORY",
    "ACCOUNT DETAILS",
)

# Code check (entitlement_offer_codes)
INVALID_CODE_MARKER = "This is not a valid SHiFT code"
ALREADY_REDEEMED_MARKER = "This SHiFT code has already been redeemed"
EXPIRED_MARKERS = ("expired", "no longer valid")

# Redemption response
REDEEMED_MARKER = "already been redeemed"
REWARDS_PAGE_MARKER = "My Rewards"

FORM_FIELD_SERVICE = "archway_code_redemption[service]"
FORM_FIELD_TITLE = "archway_code_redemption[title]"
FORM_FIELD_CODE = "archway_code_redemption[code]"
FORM_FIELD_CHECK = "archway_code_redemption[check]"
FORM_FIELD_TOKEN = "authenticity_token"

_SERVICE_TO_PLATFORM = {service: platform for platform, service in PLATFORM_CODES.items()}


def matches_marker(html: str, *markers: str) -> bool:
    """True if any literal marker occurs in the document"""
    if not html:
        return False
    return any(marker in html for marker in markers)


def extract_tokens(html: str) -> Tuple[str, str]:
    """Return (csrf meta token, form authenticity_token) from the login page"""
    soup = BeautifulSoup(html or "", "html.parser")

    csrf_meta = soup.find("meta", {"name": "csrf-token"})
    csrf_token = csrf_meta.get("content") if csrf_meta else None

    token_input = soup.find("input", {"name": FORM_FIELD_TOKEN})
    form_token = token_input.get("value") if token_input else None

    if not csrf_token or not form_token:
        missing = [name for name, value in (("csrf-token", csrf_token), ("authenticity_token", form_token)) if not value]
        raise AuthTokenMissing(f"Could not extract authentication tokens (missing: {', '.join(missing)})")

    return csrf_token, form_token


def _input_value(form, name: str) -> Optional[str]:
    tag = form.find("input", {"name": name})
    if tag is None:
        return None
    return tag.get("value") or None


def extract_forms(html: str) -> List[RedemptionForm]:
    """Parse every complete redemption form out of a code-check response

    Raises SiteParseError when the page has redemption forms but none of
    them carries every field a submission needs.
    """
    soup = BeautifulSoup(html or "", "html.parser")

    forms = soup.select("form.new_archway_code_redemption")
    if not forms:
        forms = soup.find_all("form", action="/code_redemptions")

    results = []
    for form in forms:
        service = _input_value(form, FORM_FIELD_SERVICE)
        title = _input_value(form, FORM_FIELD_TITLE)
        code = _input_value(form, FORM_FIELD_CODE)
        check = _input_value(form, FORM_FIELD_CHECK)
        token = _input_value(form, FORM_FIELD_TOKEN)

        # Incomplete forms cannot be submitted
        if not (service and title and code and check and token):
            continue

        game = TITLE_DISPLAY_NAMES.get(title)
        if game is None:
            header = form.find_previous(["h1", "h2", "h3", "h4"])
            game = header.get_text().strip() if header else title

        results.append(RedemptionForm(
            game=game,
            platform=_SERVICE_TO_PLATFORM.get(service, service),
            service=service,
            title=title,
            code=code,
            check=check,
            token=token,
        ))

    if forms and not results:
        raise SiteParseError(f"Found {len(forms)} redemption form(s) but none had every required field")
    return results


def alert_texts(html: str) -> List[str]:
    """Visible alert/flash texts, used for debug output"""
    soup = BeautifulSoup(html or "", "html.parser")
    texts = []
    for elem in soup.select("div.alert, .notice, .flash, .error"):
        style = (elem.get("style") or "").replace(" ", "").lower()
        if "display:none" in style:
            continue
        text = " ".join(elem.get_text(" ", strip=True).split())
        if text and text not in texts:
            texts.append(text)
    return texts


class HTMLDebugger:
    """Persists unexpected responses for later inspection"""

    def __init__(self, save_dir: Path):
        self.save_dir = Path(save_dir)

    def save_html(self, html_content: str, prefix: str = "debug") -> str:
        """Save HTML content to file with timestamp"""
        timestamp = datetime.now().strftime("%H%M%S_%f")[:-3]  # milliseconds
        hash_suffix = hashlib.md5(html_content.encode()).hexdigest()[:8]
        filepath = self.save_dir / f"{prefix}_{timestamp}_{hash_suffix}.html"

        try:
            self.save_dir.mkdir(parents=True, exist_ok=True)
            filepath.write_text(html_content, encoding="utf-8")
            return str(filepath)
        except OSError as e:
            log_warning(f"Failed to save HTML file: {e}")
            return ""
