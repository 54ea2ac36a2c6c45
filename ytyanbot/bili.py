"""Bilibili link handling: av/BV id conversion and share-link cleanup."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple
from urllib.parse import SplitResult, parse_qsl, urlencode, urlsplit, urlunsplit

import requests

__all__ = [
    "NoBilibiliLinksError",
    "Converted",
    "bv2av",
    "av2bv",
    "follow_redirects",
    "has_video_link",
    "convert_bilibili_links",
]

XOR_CODE = 23442827791579
BASE = 58
TABLE = "FcwAPNKTMug3GV5Lj7EJnHpWsx4tb8haYeviqBz6rkCy12mUSDQX9RdoZf"
_MASK = (1 << 51) - 1
_INT64_MAX = (1 << 63) - 1
_REVERSE_TABLE: Dict[str, int] = {ch: i for i, ch in enumerate(TABLE)}

_FLAGS = re.IGNORECASE | re.ASCII
_RE_AV = re.compile(r"/av\d+", _FLAGS)
_RE_BV = re.compile(r"/BV[\da-zA-Z]+", _FLAGS)
_RE_AV_OR_BV = re.compile(r"(/av\d+|/BV[\da-zA-Z]+)", _FLAGS)
_RE_LINK = re.compile(r"(https?://)?\w+(\.(\w)+)+/[\w#?/=&%+._()*$@!^\-]+", _FLAGS)
_RE_HTTP_SCHEMA = re.compile(r"^https?://")
_RE_FAST_CHECK = re.compile(r"bilibili\.com|b23\.tv|bili2233\.cn", re.IGNORECASE)

_SHORT_HOSTS = frozenset({"b23.tv", "bili2233.cn"})
_VIDEO_HOSTS = frozenset({"bilibili.com", "www.bilibili.com", "m.bilibili.com"})
_MALL_HOST = "mall.bilibili.com"
_VALID_BV_PARAMS = ("p", "start_progress", "t")
_VALID_MALL_PARAMS = ("itemsId",)

_REDIRECT_TIMEOUT = 30


class NoBilibiliLinksError(ValueError):
    """Raised when a text contains no Bilibili link."""

    def __init__(self) -> None:
        super().__init__("no Bilibili links")


def _swap(chars: List[str]) -> None:
    chars[3], chars[9] = chars[9], chars[3]
    chars[4], chars[7] = chars[7], chars[4]


def bv2av(bvid: str) -> str:
    """Convert a "/BV1..." path segment into "/av<number>".

    Input that is not a well-formed BV id is returned unchanged.
    """
    if len(bvid) != 13 or not bvid.startswith("/BV1"):
        return bvid
    chars = list(bvid[1:])
    _swap(chars)
    body = "".join(chars[3:])
    value = 0
    for ch in body:
        idx = _REVERSE_TABLE.get(ch)
        if idx is None:
            return body
        value = value * BASE + idx
    return f"/av{(value & _MASK) ^ XOR_CODE}"


def av2bv(av: str) -> str:
    """Convert a "/av<number>" path segment into "/BV1..."."""
    digits = av[3:]
    if not (digits.isascii() and digits.isdigit()):
        raise ValueError(f"invalid av number: {digits!r}")
    aid = int(digits)
    if aid > _INT64_MAX:
        raise ValueError(f"av number out of range: {digits}")
    chars = list("BV1000000000")
    value = (aid | (1 << 51)) ^ XOR_CODE
    pos = len(chars) - 1
    while value > 0:
        value, rem = divmod(value, BASE)
        chars[pos] = TABLE[rem]
        pos -= 1
    _swap(chars)
    return "/" + "".join(chars)


def follow_redirects(url: str) -> str:
    """Request ``url`` without following redirects and return its Location header."""
    resp = requests.get(url, allow_redirects=False, timeout=_REDIRECT_TIMEOUT)
    resp.close()
    return resp.headers.get("Location", "")


def has_video_link(link: str) -> bool:
    """Tell whether the text holds an av or BV video path."""
    return _RE_AV_OR_BV.search(link) is not None


def _host(parts: SplitResult) -> str:
    return parts.netloc.rpartition("@")[2]


def _clean_params(parts: SplitResult, valid: Sequence[str]) -> Tuple[str, bool]:
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    kept: Dict[str, List[str]] = {}
    removed = False
    for key, value in pairs:
        if key in valid:
            kept.setdefault(key, []).append(value)
        else:
            removed = True
    query = urlencode([(key, value) for key in sorted(kept) for value in kept[key]])
    return urlunsplit(parts._replace(query=query)), removed


@dataclass
class _Link:
    av_link: str
    bv_link: str
    has_av: bool = False
    has_bv: bool = False
    need_clean: bool = False


def _convert_video_link(result: _Link, link: str) -> None:
    if _RE_BV.search(link):
        result.bv_link = link
        result.has_bv = True
        result.av_link, count = _RE_BV.subn(lambda m: bv2av(m.group(0)), link)
        result.has_av = count > 0
    elif _RE_AV.search(link):
        result.av_link = link
        result.has_av = True
        result.bv_link, count = _RE_AV.subn(lambda m: av2bv(m.group(0)), link)
        result.has_bv = count > 0


def _try_parse_link(text: str) -> _Link:
    result = _Link(av_link=text, bv_link=text)
    url = text if _RE_HTTP_SCHEMA.match(text) else "https://" + text
    try:
        parts = urlsplit(url)._replace(scheme="https")
        if _host(parts) in _SHORT_HOSTS:
            target = follow_redirects(urlunsplit(parts))
            if not target:
                return result
            parts = urlsplit(target)
    except (requests.RequestException, ValueError):
        return result

    host = _host(parts)
    if host in _VIDEO_HOSTS:
        link, result.need_clean = _clean_params(parts, _VALID_BV_PARAMS)
        if not _RE_AV_OR_BV.search(parts.path):
            result.bv_link = link
            result.has_bv = True
            return result
        _convert_video_link(result, link)
    elif host == _MALL_HOST:
        result.bv_link, result.need_clean = _clean_params(parts, _VALID_MALL_PARAMS)
        result.has_bv = True
    return result


@dataclass
class Converted:
    """A text with its Bilibili links rewritten to av and to BV form."""

    raw: str = ""
    av_text: str = ""
    bv_text: str = ""
    has_av: bool = False
    has_bv: bool = False
    need_clean: bool = False

    def can_convert(self) -> bool:
        return self.has_av or self.has_bv


def convert_bilibili_links(text: str) -> Converted:
    """Rewrite every link in ``text``, expanding short links and dropping tracking parameters."""
    if not _RE_FAST_CHECK.search(text):
        raise NoBilibiliLinksError()
    matches = list(_RE_LINK.finditer(text))
    if not matches:
        raise NoBilibiliLinksError()

    result = Converted(raw=text)
    av_parts: List[str] = []
    bv_parts: List[str] = []
    last = 0
    for match in matches:
        start, end = match.span()
        av_parts.append(text[last:start])
        bv_parts.append(text[last:start])
        parsed = _try_parse_link(match.group(0))
        result.has_av = result.has_av or parsed.has_av
        result.has_bv = result.has_bv or parsed.has_bv
        result.need_clean = result.need_clean or parsed.need_clean
        av_parts.append(parsed.av_link)
        bv_parts.append(parsed.bv_link)
        last = end
    av_parts.append(text[last:])
    bv_parts.append(text[last:])
    result.av_text = "".join(av_parts)
    result.bv_text = "".join(bv_parts)
    return result