"""
Error taxonomy for the SHiFT client and the redemption engine.

Every error carries a developer-facing ``message``, a short ``user_message``
suitable for showing next to a retry button, and a ``retryable`` flag that
the retry helper consults.
"""

from typing import Optional

import requests


class ShiftError(Exception):
    """Base class for all autoredeem errors"""

    default_user_message = "An unexpected error occurred."
    default_retryable = False

    def __init__(self, message: str = "", user_message: Optional[str] = None,
                 status_code: Optional[int] = None, retryable: Optional[bool] = None):
        super().__init__(message or self.default_user_message)
        self.message = message or self.default_user_message
        self.user_message = user_message or self.default_user_message
        self.status_code = status_code
        self.retryable = self.default_retryable if retryable is None else retryable


class NotAuthenticated(ShiftError):
    default_user_message = "Not authenticated. Please log in again."


class AuthTokenMissing(ShiftError):
    default_user_message = "Could not extract authentication tokens from the SHiFT login page."


class InvalidCredentials(ShiftError):
    default_user_message = "Invalid email or password."


class LoginFailed(ShiftError):
    default_user_message = "Login failed. Please try again."


class SiteUnavailable(ShiftError):
    default_user_message = "The SHiFT website is unreachable right now."


class NetworkError(ShiftError):
    default_user_message = "Unable to connect. Check your internet connection."
    default_retryable = True


class RateLimitExceeded(ShiftError):
    default_user_message = "Too many requests. Please wait a moment."
    default_retryable = True


class SiteParseError(ShiftError):
    default_user_message = "Received unexpected content from the SHiFT website."


class FeedError(ShiftError):
    default_user_message = "Could not load the code feed. Please try again later."


_NETWORK_HINTS = ("network", "connection", "failed to fetch", "econnrefused", "enotfound", "timeout", "timed out")


def is_network_error(error: BaseException) -> bool:
    """Check if an error is a network/connectivity error"""
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(error, ShiftError):
        return False
    text = str(error).lower()
    return any(hint in text for hint in _NETWORK_HINTS)


def is_retryable_error(error: BaseException) -> bool:
    """Check if an error is worth retrying"""
    if isinstance(error, ShiftError):
        return error.retryable
    return is_network_error(error)


def user_message(error: BaseException) -> str:
    """Get a user-friendly message for any error"""
    if isinstance(error, ShiftError):
        return error.user_message
    if is_network_error(error):
        return NetworkError.default_user_message

    msg = str(error)
    if "HTTP 5" in msg:
        return "Server error. Please try again later."
    if "HTTP 4" in msg:
        return "Request failed. The resource may be unavailable."
    return msg or ShiftError.default_user_message


def wrap_request_error(error: requests.RequestException, context: str = "") -> ShiftError:
    """Convert a requests exception into the matching ShiftError"""
    prefix = f"{context}: " if context else ""
    if isinstance(error, requests.Timeout):
        return NetworkError(f"{prefix}request timed out ({error})", user_message="Request timed out. Please try again.")
    if isinstance(error, requests.ConnectionError):
        return NetworkError(f"{prefix}connection failed ({error})")
    return ShiftError(f"{prefix}{error}")
