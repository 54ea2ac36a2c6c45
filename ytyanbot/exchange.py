"""Currency conversion backed by a cached public exchange-rate API."""

from __future__ import annotations

import re
import time
from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Dict, Mapping, Optional

import requests

__all__ = [
    "ExchangeError",
    "CurrencyNotAvailableError",
    "FromCurrencyNotFoundError",
    "ToCurrencyNotFoundError",
    "InvalidExchangeRequestError",
    "ExchangeRequest",
    "ExchangeResult",
    "ApiResponse",
    "is_available_cash",
    "get_exchange_rate",
    "get_exchange_rate_with_alias",
    "parse_exchange_rate",
    "is_exchange_rate_calc",
]

_API_URL = "https://open.er-api.com/v6/latest/{base}"
_REQUEST_TIMEOUT = 30
_MIN_FETCH_INTERVAL = 3600.0
_DEFAULT_TARGET = "CNY"

_AVAILABLE = frozenset(
    (
        "CNY,AED,AFN,ALL,AMD,ANG,AOA,ARS,AUD,AWG,AZN,BAM,BBD,BDT,BGN,BHD,BIF,"
        "BMD,BND,BOB,BRL,BSD,BTN,BWP,BYN,BZD,CAD,CDF,CHF,CLP,COP,CRC,CUP,CVE,"
        "CZK,DJF,DKK,DOP,DZD,EGP,ERN,ETB,EUR,FJD,FKP,FOK,GBP,GEL,GGP,GHS,GIP,"
        "GMD,GNF,GTQ,GYD,HKD,HNL,HRK,HTG,HUF,IDR,ILS,IMP,INR,IQD,IRR,ISK,JEP,"
        "JMD,JOD,JPY,KES,KGS,KHR,KID,KMF,KRW,KWD,KYD,KZT,LAK,LBP,LKR,LRD,LSL,"
        "LYD,MAD,MDL,MGA,MKD,MMK,MNT,MOP,MRU,MUR,MVR,MWK,MXN,MYR,MZN,NAD,NGN,"
        "NIO,NOK,NPR,NZD,OMR,PAB,PEN,PGK,PHP,PKR,PLN,PYG,QAR,RON,RSD,RUB,RWF,"
        "SAR,SBD,SCR,SDG,SEK,SGD,SHP,SLE,SLL,SOS,SRD,SSP,STN,SYP,SZL,THB,TJS,"
        "TMT,TND,TOP,TRY,TTD,TVD,TWD,TZS,UAH,UGX,USD,UYU,UZS,VES,VND,VUV,WST,"
        "XAF,XCD,XDR,XOF,XPF,YER,ZAR,ZMW,ZWL"
    ).split(",")
)

_REQUEST_RE = re.compile(
    r"(\d+(\.\d+)?)\s*([a-zA-Z]{3})\s*((to)?\s*([a-zA-Z]{3}))?", re.ASCII
)


class ExchangeError(Exception):
    """Base class for currency conversion failures."""


class CurrencyNotAvailableError(ExchangeError):
    def __init__(self) -> None:
        super().__init__("currency not supported")


class FromCurrencyNotFoundError(ExchangeError):
    def __init__(self) -> None:
        super().__init__("from currency not found")


class ToCurrencyNotFoundError(ExchangeError):
    def __init__(self) -> None:
        super().__init__("to currency not found")


class InvalidExchangeRequestError(ExchangeError):
    def __init__(self) -> None:
        super().__init__("not a valid exchange request")


@dataclass(frozen=True)
class ExchangeRequest:
    amount: float
    from_currency: str
    to_currency: str


@dataclass(frozen=True)
class ExchangeResult:
    request: ExchangeRequest
    result: float
    update_at: Optional[datetime] = None


def _fetch(base: str) -> "ApiResponse":
    resp = requests.get(_API_URL.format(base=base), timeout=_REQUEST_TIMEOUT)
    _state.last_request = time.time()
    with resp:
        return ApiResponse.from_json(resp.json())


@dataclass
class ApiResponse:
    """Latest rates for one base currency as returned by the rate API."""

    result: str = ""
    provider: str = ""
    documentation: str = ""
    terms_of_use: str = ""
    time_last_update_unix: int = 0
    time_last_update_utc: str = ""
    time_next_update_unix: int = 0
    time_next_update_utc: str = ""
    time_eol_unix: int = 0
    base_code: str = ""
    rates: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_json(cls, data: Mapping) -> "ApiResponse":
        return cls(
            result=data.get("result", ""),
            provider=data.get("provider", ""),
            documentation=data.get("documentation", ""),
            terms_of_use=data.get("terms_of_use", ""),
            time_last_update_unix=int(data.get("time_last_update_unix", 0)),
            time_last_update_utc=data.get("time_last_update_utc", ""),
            time_next_update_unix=int(data.get("time_next_update_unix", 0)),
            time_next_update_utc=data.get("time_next_update_utc", ""),
            time_eol_unix=int(data.get("time_eol_unix", 0)),
            base_code=data.get("base_code", ""),
            rates={k: float(v) for k, v in (data.get("rates") or {}).items()},
        )

    def need_update(self) -> bool:
        return time.time() > self.time_next_update_unix

    def update(self) -> None:
        """Refetch the rates in place when the API says they are stale."""
        if not self.need_update():
            return
        fresh = _fetch(self.base_code)
        for f in fields(self):
            setattr(self, f.name, getattr(fresh, f.name))

    def last_update_at(self) -> datetime:
        return datetime.fromtimestamp(self.time_last_update_unix, tz=timezone.utc)

    def exchange(self, req: ExchangeRequest) -> ExchangeResult:
        if req.from_currency == req.to_currency:
            return ExchangeResult(req, req.amount)
        from_rate = self.rates.get(req.from_currency)
        if from_rate is None:
            raise FromCurrencyNotFoundError()
        to_rate = self.rates.get(req.to_currency)
        if to_rate is None:
            raise ToCurrencyNotFoundError()
        return ExchangeResult(
            req, req.amount * to_rate / from_rate, self.last_update_at()
        )


class _RateCache:
    def __init__(self) -> None:
        self.tables: Dict[str, ApiResponse] = {}
        self.last_request = 0.0

    def can_fetch(self) -> bool:
        return time.time() - self.last_request > _MIN_FETCH_INTERVAL

    def refresh(self, base: str) -> None:
        if not self.can_fetch():
            return
        table = self.tables.get(base)
        if table is None:
            self.tables[base] = _fetch(base)
        else:
            table.update()

    def best_table(self, prefer: str) -> Optional[ApiResponse]:
        if prefer and prefer in self.tables:
            return self.tables[prefer]
        best: Optional[ApiResponse] = None
        newest = 0
        for table in self.tables.values():
            if table.time_last_update_unix > newest:
                newest = table.time_last_update_unix
                best = table
        return best


_state = _RateCache()


def is_available_cash(cash: str) -> bool:
    return cash in _AVAILABLE


def get_exchange_rate(req: ExchangeRequest) -> ExchangeResult:
    """Convert using cached rates, fetching at most once an hour."""
    if req.from_currency == req.to_currency:
        return ExchangeResult(req, req.amount, datetime.now(tz=timezone.utc))
    if not (is_available_cash(req.from_currency) and is_available_cash(req.to_currency)):
        raise CurrencyNotAvailableError()
    try:
        _state.refresh(req.from_currency)
    except (requests.RequestException, ValueError):
        # Stale rates are still usable; a failed refresh is not fatal.
        pass
    table = _state.best_table(req.from_currency)
    if table is None:
        raise FromCurrencyNotFoundError()
    return table.exchange(req)


def get_exchange_rate_with_alias(
    req: ExchangeRequest, alias: Mapping[str, str]
) -> ExchangeResult:
    """Like :func:`get_exchange_rate`, first mapping currency names through ``alias``."""
    req = replace(
        req,
        from_currency=alias.get(req.from_currency, req.from_currency),
        to_currency=alias.get(req.to_currency, req.to_currency),
    )
    return get_exchange_rate(req)


def parse_exchange_rate(text: str) -> ExchangeRequest:
    """Parse text such as ``"1.5 usd to jpy"``; the target defaults to CNY."""
    match = _REQUEST_RE.fullmatch(text)
    if match is None:
        raise CurrencyNotAvailableError()
    try:
        amount = float(match.group(1))
    except ValueError as exc:
        raise InvalidExchangeRequestError() from exc
    source = match.group(3).upper()
    target = (match.group(6) or "").upper() or _DEFAULT_TARGET
    return ExchangeRequest(amount, source, target)


def is_exchange_rate_calc(text: str) -> bool:
    return _REQUEST_RE.fullmatch(text) is not None