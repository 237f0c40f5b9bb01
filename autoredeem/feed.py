"""Client for the JSON feed that publishes discovered SHiFT codes."""

from dataclasses import dataclass, field
from typing import Callable, List, Optional

import requests

from .errors import FeedError, wrap_request_error
from .log import log_debug, log_warning
from .models import ShiftCode
from .retry import with_retry
from .storage import RedemptionLedger


@dataclass
class FailedFeedCode:
    """A feed code together with its failed-ledger entry"""
    code: ShiftCode
    failed_reason: str
    attempt_count: int


@dataclass
class CodesFetchResult:
    available: List[ShiftCode] = field(default_factory=list)
    failed: List[FailedFeedCode] = field(default_factory=list)
    redeemed: List[ShiftCode] = field(default_factory=list)


class FeedClient:
    """Fetches the code feed and partitions it against the ledger"""

    def __init__(self, feed_url: str, ledger: RedemptionLedger, http: Optional[requests.Session] = None,
                 timeout=(10, 30), sleep: Optional[Callable[[float], None]] = None):
        self.feed_url = feed_url
        self.ledger = ledger
        self.http = http or requests.Session()
        self.timeout = timeout
        self._sleep = sleep

    def _fetch_once(self) -> List[ShiftCode]:
        try:
            resp = self.http.get(self.feed_url, headers={'Accept': 'application/json'}, timeout=self.timeout)
        except requests.RequestException as e:
            raise wrap_request_error(e, "code feed")

        if not 200 <= resp.status_code < 300:
            retryable = resp.status_code == 429 or resp.status_code >= 500
            raise FeedError(f"Failed to fetch codes: HTTP {resp.status_code}",
                            status_code=resp.status_code, retryable=retryable)

        try:
            data = resp.json()
        except ValueError as e:
            raise FeedError(f"Code feed returned invalid JSON: {e}")

        if not isinstance(data, dict) or not isinstance(data.get("codes"), list):
            raise FeedError("Code feed is missing the 'codes' list")

        codes = []
        for entry in data["codes"]:
            try:
                codes.append(ShiftCode.from_dict(entry))
            except (KeyError, TypeError, ValueError) as e:
                log_warning(f"Skipping malformed feed entry: {e}")
        return codes

    def fetch_codes(self) -> List[ShiftCode]:
        """Fetch every code in the feed, retrying transient failures"""
        kwargs = {} if self._sleep is None else {"sleep": self._sleep}
        codes = with_retry(self._fetch_once, **kwargs)
        log_debug(f"Fetched {len(codes)} codes from {self.feed_url}")
        return codes

    def fetch_available_codes(self, games: List[str]) -> CodesFetchResult:
        """Split the feed's unexpired codes for the given games into available, failed and redeemed"""
        all_codes = self.fetch_codes()
        redeemed = self.ledger.redeemed_codes()
        failed = self.ledger.failed_codes()
        wanted = set(games)

        result = CodesFetchResult()
        for code in all_codes:
            if code.expired:
                continue
            if not any(game in wanted for game in code.games):
                continue

            if code.code in redeemed:
                result.redeemed.append(code)
            elif code.code in failed:
                record = failed[code.code]
                result.failed.append(FailedFeedCode(code=code, failed_reason=record.reason,
                                                    attempt_count=record.attempt_count))
            else:
                result.available.append(code)

        return result
