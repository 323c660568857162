"""
Have I Been Pwned client for breached-password checks.

Uses the k-anonymity range API: only the first five characters of the
password's SHA-1 hash leave the process.
"""
import hashlib
import logging
from typing import Optional

import httpx

from authgate.core.config import Settings

logger = logging.getLogger(__name__)

HIBP_API_URL = "https://api.pwnedpasswords.com"


class HIBPClient:
    """Breach checker backed by the Pwned Passwords range API."""

    def __init__(
        self,
        base_url: str = HIBP_API_URL,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings, client: Optional[httpx.Client] = None) -> "HIBPClient":
        return cls(base_url=settings.HIBP_API_URL, client=client)

    def is_password_breached(self, password: str) -> bool:
        """
        Check whether a password appears in a known breach.

        Args:
            password: Plain text password

        Returns:
            True if the password has been seen in a breach

        Raises:
            httpx.HTTPError: If the API cannot be reached or answers with an error
        """
        digest = hashlib.sha1(password.encode("utf-8")).hexdigest().upper()
        prefix, suffix = digest[:5], digest[5:]

        response = self.client.get(
            f"{self.base_url}/range/{prefix}",
            headers={"Add-Padding": "true"},
        )
        response.raise_for_status()

        for line in response.text.splitlines():
            candidate, _, count = line.strip().partition(":")
            # padding entries have a count of 0
            if candidate == suffix and int(count or 0) > 0:
                logger.info(f"Password found in breach corpus ({count} occurrences)")
                return True
        return False

    def close(self) -> None:
        self.client.close()
