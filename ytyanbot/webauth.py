"""Web app authentication: signed init-data checks, error codes and int64 JSON strings."""

from __future__ import annotations

import enum
import hashlib
import hmac
import json
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union
from urllib.parse import unquote_to_bytes

__all__ = [
    "ErrCode",
    "AuthError",
    "WebInitUser",
    "AuthInfo",
    "bot_verify_key",
    "check_telegram_auth",
    "parse_json_int64",
    "format_json_int64",
]

_UINT64_LIMIT = 1 << 64
_INT64_LIMIT = 1 << 63
_BAD_ESCAPE = re.compile(r"%(?![0-9A-Fa-f]{2})")
_DIGITS = re.compile(r"[0-9]+")
_SIGNED_INT = re.compile(r"[+-]?[0-9]+")


class ErrCode(enum.IntEnum):
    """Error codes returned by the web API."""

    VALID_FAILED = 1001
    EXPIRED = 1002
    NO_AUTH = 1003
    NO_RESOURCE = 2001
    ARG_INVALID = 2002
    USER_NOT_FOUND = 3001
    GROUP_NOT_FOUND = 3002
    USER_NO_PROFILE_PHOTO = 3003
    SEARCH_FAILED = 4001

    def msg(self, message: str) -> Dict[str, Any]:
        """Build the JSON error body for this code."""
        return {"status": "error", "code": int(self), "error": message}


class AuthError(ValueError):
    """Init data failed verification or could not be parsed."""


@dataclass
class WebInitUser:
    id: int = 0
    first_name: str = ""
    last_name: str = ""
    username: str = ""
    language_code: str = ""
    is_premium: bool = False
    allows_write_to_pm: bool = False

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "WebInitUser":
        return cls(
            id=int(data.get("id", 0)),
            first_name=str(data.get("first_name", "")),
            last_name=str(data.get("last_name", "")),
            username=str(data.get("username", "")),
            language_code=str(data.get("language_code", "")),
            is_premium=bool(data.get("is_premium", False)),
            allows_write_to_pm=bool(data.get("allows_write_to_pm", False)),
        )


@dataclass
class AuthInfo:
    query_id: str = ""
    user: WebInitUser = field(default_factory=WebInitUser)
    auth_date: Optional[datetime] = None
    hash: str = ""


def bot_verify_key(token: str) -> bytes:
    """Derive the web-app data verification key from a bot token."""
    return hmac.new(b"WebAppData", token.encode(), hashlib.sha256).digest()


def _unescape(text: str) -> str:
    if _BAD_ESCAPE.search(text):
        raise AuthError(f"url unescape err: {text!r}")
    raw = unquote_to_bytes(text.replace("+", " "))
    return raw.decode("utf-8", "surrogateescape")


def _parse_user(value: str) -> WebInitUser:
    try:
        data = json.loads(value)
    except ValueError as exc:
        raise AuthError(f"invalid user json: {exc}") from exc
    if not isinstance(data, dict):
        raise AuthError("invalid user json: not an object")
    try:
        return WebInitUser.from_json(data)
    except (TypeError, ValueError) as exc:
        raise AuthError(f"invalid user json: {exc}") from exc


def check_telegram_auth(data: str, verify_key: bytes) -> AuthInfo:
    """Verify the hash of URL-encoded init data and return its fields."""
    received = ""
    pairs = []
    for piece in data.split("&"):
        key, _, value = piece.partition("=")
        if key == "hash":
            received = value
            continue
        pairs.append(f"{_unescape(key)}={_unescape(value)}")
    if not received:
        raise AuthError("no hash")

    pairs.sort()
    check_string = "\n".join(pairs).encode("utf-8", "surrogateescape")
    calculated = hmac.new(verify_key, check_string, hashlib.sha256).hexdigest()
    if received != calculated:
        raise AuthError(f"wrong recvHash calc={calculated[:4]}*** recv={received}")

    info = AuthInfo()
    for pair in pairs:
        key, _, value = pair.partition("=")
        if key == "auth_date":
            if _SIGNED_INT.fullmatch(value) is None:
                raise AuthError(f"invalid auth_date: {value!r}")
            info.auth_date = datetime.fromtimestamp(int(value), tz=timezone.utc)
        elif key == "query_id":
            info.query_id = value
        elif key == "user":
            info.user = _parse_user(value)
    return info


def parse_json_int64(value: Union[str, bytes]) -> int:
    """Read an unsigned decimal, optionally quoted, as a signed 64-bit integer."""
    text = value.decode() if isinstance(value, bytes) else value
    if not text:
        raise ValueError("empty value")
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        text = text[1:-1]
    if _DIGITS.fullmatch(text) is None:
        raise ValueError(f"invalid integer: {text!r}")
    number = int(text)
    if number >= _UINT64_LIMIT:
        raise ValueError(f"integer out of range: {text}")
    return number - _UINT64_LIMIT if number >= _INT64_LIMIT else number


def format_json_int64(value: int) -> str:
    """Write an integer as a quoted JSON string."""
    return f'"{int(value)}"'