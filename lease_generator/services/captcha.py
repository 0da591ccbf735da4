"""Captcha verification against a siteverify endpoint"""

import asyncio
import logging
from typing import Optional

import aiohttp

from lease_generator.utils.config import Settings

logger = logging.getLogger(__name__)


class CaptchaVerifier:
    """Check proof-of-humanity tokens with the captcha provider.

    Works with any provider exposing the common siteverify contract
    (form fields ``secret``, ``response``, optional ``remoteip``; JSON reply
    with a boolean ``success``), e.g. Cloudflare Turnstile or hCaptcha.
    """

    def __init__(
        self,
        required: bool,
        secret_key: Optional[str] = None,
        verify_url: str = "https://challenges.cloudflare.com/turnstile/v0/siteverify",
        timeout_seconds: float = 10.0,
    ):
        if required and not secret_key:
            raise RuntimeError(
                "CAPTCHA_REQUIRED is set but CAPTCHA_SECRET_KEY is missing. Add it to your .env file."
            )
        self._required = required
        self.secret_key = secret_key
        self.verify_url = verify_url
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "CaptchaVerifier":
        return cls(
            required=settings.captcha_required,
            secret_key=settings.captcha_secret_key,
            verify_url=settings.captcha_verify_url,
            timeout_seconds=settings.captcha_timeout_seconds,
        )

    @property
    def required(self) -> bool:
        return self._required

    async def verify(self, token: str, remote_ip: Optional[str] = None) -> bool:
        """Return True only if the provider positively accepts the token.

        Transport failures count as a rejection.
        """
        payload = {"secret": self.secret_key or "", "response": token}
        if remote_ip:
            payload["remoteip"] = remote_ip

        try:
            result = await self._post_verification(payload)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.debug(f"Captcha verification request failed: {e}")
            return False

        if result is None:
            return False
        if not result.get("success"):
            logger.debug(f"Captcha rejected: {result.get('error-codes', [])}")
            return False
        return True

    async def _post_verification(self, payload: dict) -> Optional[dict]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(self.verify_url, data=payload) as response:
                if response.status != 200:
                    logger.debug(f"Captcha endpoint returned HTTP {response.status}")
                    return None
                return await response.json(content_type=None)
