"""
Gravatar avatar URLs for new users.
"""
import hashlib
from typing import Callable
from urllib.parse import urlencode

GRAVATAR_BASE_URL = "https://www.gravatar.com/avatar"


def gravatar_url_func(enabled: bool, default: str, rating: str) -> Callable[[str], str]:
    """Build the avatar URL function for the configured Gravatar policy."""
    if not enabled:
        return lambda email: ""

    query = urlencode({"d": default, "r": rating})

    def gravatar_url(email: str) -> str:
        digest = hashlib.md5(email.strip().lower().encode("utf-8")).hexdigest()
        return f"{GRAVATAR_BASE_URL}/{digest}?{query}"

    return gravatar_url
