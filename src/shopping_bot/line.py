"""
Minimal LINE Messaging API client (v2) using stdlib urllib.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import urllib.error
import urllib.request
from typing import Any

# LINE rejects text messages longer than this
MAX_TEXT_CHARS = 5000


class LineApiError(Exception):
    def __init__(self, status: int, body: str) -> None:
        super().__init__(f"LINE API error {status}: {body}")
        self.status = status
        self.body = body


def verify_signature(channel_secret: str, body: bytes, signature: str | None) -> bool:
    """Check `X-Line-Signature` (base64 HMAC-SHA256 of the raw body)."""
    if not signature:
        return False
    digest = hmac.new(channel_secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("ascii")
    return hmac.compare_digest(expected, signature)


def text_message(text: str) -> dict[str, Any]:
    return {"type": "text", "text": text}


class LineClient:
    def __init__(self, access_token: str, base_url: str = "https://api.line.me", timeout: int = 8) -> None:
        self.base_api = base_url.rstrip("/") + "/v2/bot"
        self.access_token = access_token
        self.timeout = timeout

    # ----- Helpers -----
    def _post_json(self, path: str, payload: dict[str, Any]) -> Any:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req = urllib.request.Request(
            self.base_api + path,
            data=body,
            headers={
                "User-Agent": "ShoppingBot/1.0",
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.access_token}",
            },
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:  # nosec B310
                data = resp.read()
        except urllib.error.HTTPError as e:
            raise LineApiError(e.code, e.read().decode("utf-8", "replace")) from e
        try:
            return json.loads(data.decode("utf-8") or "{}")
        except ValueError:
            return {}

    # ----- Public APIs -----
    def reply_message(self, reply_token: str, text: str) -> dict[str, Any]:
        """Answer an inbound event. A reply token works once and expires quickly."""
        return self._post_json(
            "/message/reply",
            {"replyToken": reply_token, "messages": [text_message(text)]},
        )

    def push_message(self, to: str, text: str) -> dict[str, Any]:
        return self._post_json("/message/push", {"to": to, "messages": [text_message(text)]})
