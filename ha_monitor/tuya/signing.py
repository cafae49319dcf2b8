from __future__ import annotations

import hashlib
import hmac
import time

SIGN_METHOD = "HMAC-SHA256"


def timestamp_ms() -> int:
    return int(time.time() * 1000)


def sha256_hex(body: bytes) -> str:
    return hashlib.sha256(body).hexdigest()


def post_string_to_sign(path: str, body: bytes) -> str:
    # Content-Type and signed-header lines stay empty.
    return f"POST\n{sha256_hex(body)}\n\n{path}"


def get_string_to_sign(path: str) -> str:
    return f"GET\n\n\n{path}"


class SignatureEngine:
    """
    HMAC-SHA256 signer for the Tuya OpenAPI.

    Two message layouts are in use:
    - token acquisition signs ``access_id + t``
    - every other call signs ``access_id + t + string_to_sign``
    """

    def __init__(self, access_id: str, access_key: str):
        self.access_id = access_id
        self._key = access_key.encode("utf-8")

    def _digest(self, message: str) -> str:
        return hmac.new(self._key, message.encode("utf-8"), hashlib.sha256).hexdigest().upper()

    def sign(self, string_to_sign: str, timestamp: int) -> str:
        return self._digest(f"{self.access_id}{timestamp}{string_to_sign}")

    def sign_token_request(self, timestamp: int) -> str:
        return self._digest(f"{self.access_id}{timestamp}")

    def headers(self, sign: str, timestamp: int, *, access_token: str | None = None) -> dict[str, str]:
        headers = {
            "client_id": self.access_id,
            "sign": sign,
            "sign_method": SIGN_METHOD,
            "t": str(timestamp),
        }
        if access_token:
            headers["access_token"] = access_token
        return headers
