"""Outbound WhatsApp text delivery through the 11za send API."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import httpx

from autoreply.retrieval.directory import Credentials

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DeliveryResult:
    success: bool
    error: str | None = None


class MessageSender(Protocol):
    def send(self, to_key: str, text: str, credentials: Credentials) -> DeliveryResult: ...


class WhatsAppSender:
    """Sends one text message; failures come back as a result, never raised."""

    def __init__(self, http: httpx.Client, send_url: str, timeout: float = 30.0) -> None:
        self._http = http
        self.send_url = send_url
        self.timeout = timeout

    def send(self, to_key: str, text: str, credentials: Credentials) -> DeliveryResult:
        if not credentials.complete:
            return DeliveryResult(False, "Missing WhatsApp API credentials")

        payload = {
            "sendto": to_key,
            "authToken": credentials.auth_token,
            "originWebsite": credentials.origin,
            "contentType": "text",
            "text": text,
        }
        try:
            response = self._http.post(self.send_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error("Send to %s rejected (%d): %s", to_key, e.response.status_code, e.response.text)
            return DeliveryResult(False, f"HTTP {e.response.status_code}: {e.response.text[:200]}")
        except httpx.HTTPError as e:
            logger.error("Send to %s failed: %s", to_key, e)
            return DeliveryResult(False, str(e))

        logger.info("Message sent to %s", to_key)
        return DeliveryResult(True)
