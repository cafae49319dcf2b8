from __future__ import annotations

import re

from ha_monitor.tuya.client import switch_payload
from ha_monitor.tuya.signing import SignatureEngine, get_string_to_sign, post_string_to_sign, sha256_hex


def test_sign_matches_reference_vector() -> None:
    engine = SignatureEngine("abc", "secret")
    sign = engine.sign(get_string_to_sign("/v1.0/token/rt-1"), 1588925778000)
    assert sign == "91A7F5CF1629C07B3875FDF6EDF631AAEC2CA166DAD68086B30A91977501CB6F"


def test_sign_token_request_signs_only_id_and_timestamp() -> None:
    engine = SignatureEngine("abc", "secret")
    assert engine.sign_token_request(1588925778000) == "F674514AE22C39816538CCFECD20ACCC1B002C5B250804AFFFF397E8C0C06C4F"


def test_sign_is_deterministic_uppercase_hex() -> None:
    engine = SignatureEngine("abc", "secret")
    first = engine.sign("GET\n\n\n/x", 1)
    second = engine.sign("GET\n\n\n/x", 1)
    assert first == second
    assert re.fullmatch(r"[0-9A-F]{64}", first)
    assert engine.sign("GET\n\n\n/x", 2) != first
    assert SignatureEngine("abc", "other").sign("GET\n\n\n/x", 1) != first


def test_string_to_sign_formats() -> None:
    assert get_string_to_sign("/v1.0/token/rt") == "GET\n\n\n/v1.0/token/rt"

    body = switch_payload(False)
    assert body == b'{"commands":[{"code":"switch_1","value":false}]}'
    assert sha256_hex(body) == "00b50034bf6f9712b4542677bacb54897c35a5ffb50acfd78e2a41a2b6f5915e"
    assert post_string_to_sign("/v1.0/iot-03/devices/d1/commands", body) == (
        "POST\n00b50034bf6f9712b4542677bacb54897c35a5ffb50acfd78e2a41a2b6f5915e\n\n/v1.0/iot-03/devices/d1/commands"
    )


def test_headers_include_access_token_only_when_given() -> None:
    engine = SignatureEngine("abc", "secret")
    headers = engine.headers("SIGN", 42)
    assert headers == {"client_id": "abc", "sign": "SIGN", "sign_method": "HMAC-SHA256", "t": "42"}
    assert engine.headers("SIGN", 42, access_token="tok")["access_token"] == "tok"
