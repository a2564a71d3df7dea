"""Single-delivery flash messages carried in HMAC-signed cookies.

Each level has its own cookie.  The value is URL-encoded JSON of the form
``{"message": text, "tag": hex(HMAC-SHA256(key, text))}``.  The response that
reads a flash cookie also deletes it, and a value whose tag does not verify
is dropped and logged instead of being shown.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional
from urllib.parse import quote, unquote

from ..config import settings

logger = logging.getLogger(__name__)

FLASH_COOKIE_PATH = "/"
# browsers cap a cookie at about 4 KB
MAX_FLASH_COOKIE_LENGTH = 4096


class FlashLevel(str, Enum):
    ERROR = "error"
    SUCCESS = "success"


FLASH_COOKIES: Dict[FlashLevel, str] = {
    FlashLevel.ERROR: "error_flash",
    FlashLevel.SUCCESS: "success_flash",
}


@dataclass(frozen=True)
class FlashMessage:
    level: FlashLevel
    text: str


class FlashSigner:
    """Compute and check MAC tags with a key fixed for the process lifetime."""

    def __init__(self, key: str | bytes) -> None:
        if not key:
            raise RuntimeError("FLASH_HMAC_KEY must be configured")
        self._key = key.encode("utf-8") if isinstance(key, str) else bytes(key)

    def tag(self, text: str) -> str:
        return hmac.new(self._key, text.encode("utf-8"), hashlib.sha256).hexdigest()

    def verify(self, text: str, tag: str) -> bool:
        return hmac.compare_digest(self.tag(text).encode("ascii"), tag.encode("utf-8"))

    def encode(self, text: str) -> str:
        payload = {"message": text, "tag": self.tag(text)}
        return quote(json.dumps(payload, separators=(",", ":")), safe="")

    def decode(self, value: str) -> Optional[str]:
        """Return the verified message in ``value`` or ``None``."""

        if len(value) > MAX_FLASH_COOKIE_LENGTH:
            logger.warning("discarding oversized flash cookie (%d bytes)", len(value))
            return None
        try:
            payload = json.loads(unquote(value))
            text = payload["message"]
            tag = payload["tag"]
        except (ValueError, KeyError, TypeError, RecursionError):
            logger.warning("discarding malformed flash cookie")
            return None
        if not isinstance(text, str) or not isinstance(tag, str) or not self.verify(text, tag):
            logger.warning("Flash msg with invalid tag")
            return None
        return text


class FlashNotifier:
    """Attach flash cookies to responses and consume them from requests."""

    def __init__(self, signer: FlashSigner) -> None:
        self._signer = signer

    def attach(self, response, message: FlashMessage) -> None:
        response.set_cookie(
            FLASH_COOKIES[message.level],
            self._signer.encode(message.text),
            max_age=settings.FLASH_MAX_AGE_SECONDS,
            path=FLASH_COOKIE_PATH,
            httponly=True,
            secure=settings.cookies_secure,
            samesite="lax",
        )

    def error(self, response, text: str) -> None:
        self.attach(response, FlashMessage(FlashLevel.ERROR, text))

    def success(self, response, text: str) -> None:
        self.attach(response, FlashMessage(FlashLevel.SUCCESS, text))

    def read(self, cookies: Mapping[str, str]) -> List[FlashMessage]:
        """Return the verified messages present in ``cookies``."""

        messages: List[FlashMessage] = []
        for level, cookie_name in FLASH_COOKIES.items():
            value = cookies.get(cookie_name)
            if not value:
                continue
            text = self._signer.decode(value)
            if text is not None:
                messages.append(FlashMessage(level, text))
        return messages

    def clear(self, cookies: Mapping[str, str], response) -> None:
        """Delete every flash cookie present in ``cookies`` on ``response``."""

        for cookie_name in FLASH_COOKIES.values():
            if cookie_name in cookies:
                response.delete_cookie(
                    cookie_name,
                    path=FLASH_COOKIE_PATH,
                    httponly=True,
                    secure=settings.cookies_secure,
                    samesite="lax",
                )


__all__ = [
    "FLASH_COOKIES",
    "FlashLevel",
    "FlashMessage",
    "FlashNotifier",
    "FlashSigner",
]
