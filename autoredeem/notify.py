"""
Notification sinks for scheduled runs.

Delivery is best effort: a sink reports failure by returning False and
logging a warning, never by raising into the redemption cycle.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests

from .log import log, log_info, log_warning, Colors

APP_NAME = "BL-AutoRedeem"


class Notifier:
    """Interface for notification sinks"""

    def notify(self, title: str, body: str) -> bool:
        raise NotImplementedError

    def authentication_failed(self, error_message: Optional[str] = None) -> bool:
        return self.notify("Authentication Failed", error_message or "Please log in again.")

    def codes_redeemed_report(self, results: List[Dict[str, Any]]) -> bool:
        successes = [r for r in results if r.get("success")]
        if not successes:
            return False
        codes = ", ".join(r["code"] for r in successes)
        return self.notify("SHiFT Codes Redeemed", f"Redeemed {len(successes)} code(s): {codes}")


class LogNotifier(Notifier):
    """Writes notifications to the log"""

    def notify(self, title: str, body: str) -> bool:
        log(f"{Colors.BOLD}{title}{Colors.END}{Colors.CYAN}: {body}", Colors.CYAN)
        return True


class DiscordNotifier(Notifier):
    """
    Discord webhook notifications with embeds

    Provides notifications for:
    - Auto-redeem cycle start and completion
    - Code redemption reports
    - Authentication failures
    """

    def __init__(self, webhook_url: str, http: Optional[requests.Session] = None):
        """
        Initialize Discord notifier

        Args:
            webhook_url: Discord webhook URL for sending notifications
            http: Optional session used to post, defaults to the requests module
        """
        self.webhook_url = webhook_url
        self.http = http or requests
        self.username = APP_NAME

        # Color scheme
        self.colors = {
            'success': 0x23eb5b,  # Bright green for successful redemptions
            'error': 0xe74c3c,    # Red for critical errors
            'warning': 0xf39c12,  # Orange for warnings/action required
            'info': 0x3498db,     # Blue for informational
            'neutral': 0x95a5a6   # Gray for neutral updates
        }

    def send_embed(self, title: str, description: str = None, color: str = 'info',
                   fields: list = None, footer: str = None, timestamp: bool = True) -> bool:
        """
        Send a Discord embed message

        Args:
            title: Main title of the embed
            description: Optional description text
            color: Color key ('success', 'error', 'warning', 'info', 'neutral')
            fields: List of dicts with 'name' and 'value' keys
            footer: Optional footer text
            timestamp: Whether to include timestamp
        """
        embed = {
            'title': title,
            'color': self.colors.get(color, self.colors['info'])
        }

        if description:
            embed['description'] = description

        if fields:
            embed['fields'] = fields

        if footer:
            embed['footer'] = {'text': footer}

        if timestamp:
            embed['timestamp'] = datetime.now(timezone.utc).isoformat()

        payload = {
            'username': self.username,
            'embeds': [embed]
        }

        try:
            response = self.http.post(self.webhook_url, json=payload, timeout=10)
        except requests.RequestException as e:
            log_warning(f"Discord notification error: {e}")
            return False

        if response.status_code in (200, 204):
            return True
        log_warning(f"Discord notification failed: {response.status_code}")
        return False

    def notify(self, title: str, body: str) -> bool:
        return self.send_embed(title=title, description=body, color='info', footer=APP_NAME)

    def authentication_failed(self, error_message: Optional[str] = None) -> bool:
        """
        Send notification when authentication fails

        Args:
            error_message: Optional specific error message
        """
        description = "Failed to authenticate with SHiFT. Codes cannot be redeemed until this is resolved."

        fields = [
            {
                'name': 'Action Required',
                'value': 'Run `autoredeem --login` with SHIFT_EMAIL and SHIFT_PASSWORD set',
                'inline': False
            }
        ]

        if error_message:
            fields.append({
                'name': 'Error Details',
                'value': f"```{error_message[:500]}```",  # Truncate long errors
                'inline': False
            })

        return self.send_embed(
            title='Authentication Failed',
            description=description,
            color='error',
            fields=fields,
            footer=APP_NAME
        )

    def codes_redeemed_report(self, results: List[Dict[str, Any]]) -> bool:
        """
        Send aggregate report of redeemed codes

        Args:
            results: Run results, dicts with code, success and message keys
        """
        successes = [r for r in results if r.get("success")]
        if not successes:
            return False

        count = len(successes)
        description = f"Successfully redeemed {count} code{'s' if count != 1 else ''}"

        # Discord caps embeds at 25 fields
        fields = [
            {'name': f"`{r['code']}`", 'value': r.get("message") or "Redeemed", 'inline': False}
            for r in successes[:25]
        ]

        return self.send_embed(
            title='SHiFT Codes Redeemed',
            description=description,
            color='success',
            fields=fields,
            footer=APP_NAME
        )


def build_notifier(webhook_url: Optional[str]) -> Notifier:
    """Discord when a webhook is configured, the log otherwise"""
    if webhook_url:
        log_info("Discord notifications enabled")
        return DiscordNotifier(webhook_url)
    return LogNotifier()
