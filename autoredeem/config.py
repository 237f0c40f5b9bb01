"""Environment-driven configuration, with an optional .env file overlay."""

import os
from pathlib import Path
from typing import Dict, List, Optional

from dotenv import dotenv_values

SHIFT_BASE_URL = "https://shift.gearboxsoftware.com"
DEFAULT_FEED_URL = "https://shift.keeganfargher.co.za/shift-codes.json"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"

# User-friendly abbreviations to SHiFT title codes
TITLE_MAPPING = {
    "bl1": "mopane",      # Borderlands: Game of the Year Edition
    "bl2": "willow2",     # Borderlands 2
    "blps": "cork",       # Borderlands: The Pre-Sequel
    "bl3": "oak",         # Borderlands 3
    "ttw": "daffodil",    # Tiny Tina's Wonderlands
    "bl4": "oak2",        # Borderlands 4
}

# SHiFT title codes to the game names used by the code feed
TITLE_DISPLAY_NAMES = {
    "mopane": "Borderlands: Game of the Year Edition",
    "willow2": "Borderlands 2",
    "cork": "Borderlands: The Pre-Sequel",
    "oak": "Borderlands 3",
    "daffodil": "Tiny Tina's Wonderlands",
    "oak2": "Borderlands 4",
}

# Friendly platform names to SHiFT service codes
PLATFORM_CODES = {
    "steam": "steam",
    "xbox": "xboxlive",
    "playstation": "psn",
    "epic": "epic",
    "nintendo": "nintendo",
}

VALID_SERVICES = set(PLATFORM_CODES.values())


class Config:
    """Centralized configuration management"""

    def __init__(self, env_file: Optional[str] = ".env"):
        # Load .env file if it exists (for local development)
        if env_file and Path(env_file).exists():
            self.env_config: Dict[str, Optional[str]] = dotenv_values(env_file)
        else:
            self.env_config = {}

        self.root_dir = Path.cwd()
        self.db_path = Path(self._get_str("DATABASE_PATH") or self.root_dir / "autoredeem.db")
        self.debug_dir = Path(self._get_str("DEBUG_DIR") or self.root_dir / "autoredeem_debug")

        # Site and feed
        self.base_url = self._get_str("SHIFT_BASE_URL", SHIFT_BASE_URL).rstrip("/")
        self.feed_url = self._get_str("FEED_URL", DEFAULT_FEED_URL)
        self.user_agent = USER_AGENT

        # Runtime
        self.verbose = self._get_bool("VERBOSE", False)
        self.debug = self._get_bool("DEBUG", False)
        self.request_delay = self._get_float("REQUEST_DELAY_SECONDS", 3.0)
        self.rate_limit_delay = self._get_float("RATE_LIMIT_DELAY_SECONDS", 30.0)
        self.rate_limit_retries = self._get_int("RATE_LIMIT_RETRIES", 3)
        self.max_retries = self._get_int("MAX_RETRIES", 3)
        self.connection_timeout = self._get_float("CONNECTION_TIMEOUT", 10.0)
        self.read_timeout = self._get_float("READ_TIMEOUT", 30.0)
        self.session_days = self._get_int("SESSION_DAYS", 365)

        # Credentials
        self.email = self._get_str("SHIFT_EMAIL")
        self.password = self._get_str("SHIFT_PASSWORD")

        # Titles and services; empty means everything the code offers
        self.allowed_titles = self._parse_titles(self._get_str("ALLOWED_TITLES"))
        self.allowed_services = self._parse_services(self._get_str("ALLOWED_SERVICES"))

        # Scheduler defaults (the persisted user config overrides these)
        self.auto_redeem = self._get_bool("AUTO_REDEEM", True)
        self.check_interval_minutes = self._get_int("CHECK_INTERVAL_MINUTES", 60)
        self.poll_seconds = self._get_float("POLL_SECONDS", 30.0)
        self.notify_on_auto_redeem = self._get_bool("NOTIFY_ON_AUTO_REDEEM", False)

        # Discord Webhook Configuration
        self.discord_webhook_url = self._get_str("DISCORD_WEBHOOK_URL")

    @property
    def timeout(self):
        return (self.connection_timeout, self.read_timeout)

    @property
    def allowed_games(self) -> List[str]:
        """Game names (as used by the code feed) for the allowed titles"""
        titles = self.allowed_titles or list(TITLE_DISPLAY_NAMES)
        return [TITLE_DISPLAY_NAMES[title] for title in titles]

    def _parse_titles(self, titles_str: str) -> List[str]:
        if not titles_str:
            return []

        allowed = []
        for title in (t.strip().lower() for t in titles_str.split(",")):
            if not title:
                continue
            # Accept internal codes as well as abbreviations
            internal = TITLE_MAPPING.get(title) or (title if title in TITLE_DISPLAY_NAMES else None)
            if internal is None:
                raise ValueError(f"Invalid title '{title}'. Supported abbreviations: {', '.join(TITLE_MAPPING)}")
            if internal not in allowed:
                allowed.append(internal)
        return allowed

    def _parse_services(self, services_str: str) -> List[str]:
        if not services_str:
            return []

        services = [s.strip().lower() for s in services_str.split(",") if s.strip()]
        invalid = [s for s in services if s not in VALID_SERVICES]
        if invalid:
            raise ValueError(f"Invalid services: {invalid}. Supported services: {', '.join(sorted(VALID_SERVICES))}")
        return services

    def _get_str(self, key: str, default: str = "") -> str:
        # Check .env file first, then environment variables
        value = self.env_config.get(key)
        if value is None:
            value = os.environ.get(key, default)
        return value

    def _get_bool(self, key: str, default: bool = False) -> bool:
        value = self._get_str(key, "1" if default else "0")
        return value.strip().lower() in ("1", "true", "yes", "on")

    def _get_int(self, key: str, default: int) -> int:
        try:
            return int(self._get_str(key, str(default)))
        except ValueError:
            return default

    def _get_float(self, key: str, default: float) -> float:
        try:
            return float(self._get_str(key, str(default)))
        except ValueError:
            return default


def load_config(env_file: Optional[str] = ".env") -> Config:
    return Config(env_file=env_file)
