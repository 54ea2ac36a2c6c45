import time
from datetime import datetime, timezone

import pytest
import responses

from ytyanbot.exchange import (
    ApiResponse,
    CurrencyNotAvailableError,
    ExchangeRequest,
    FromCurrencyNotFoundError,
    ToCurrencyNotFoundError,
    get_exchange_rate,
    get_exchange_rate_with_alias,
    is_available_cash,
    is_exchange_rate_calc,
    parse_exchange_rate,
)

USD_PAYLOAD = {
    "result": "success",
    "provider": "example",
    "base_code": "USD",
    "time_last_update_unix": 1700000000,
    "time_next_update_unix": 4102444800,
    "rates": {"USD": 1, "CNY": 7.0, "JPY": 140.0},
}


def _table(**overrides):
    data = dict(USD_PAYLOAD)
    data.update(overrides)
    return ApiResponse.from_json(data)


def test_parse_req():
    assert parse_exchange_rate("1.43 usd to cny") == ExchangeRequest(1.43, "USD", "CNY")


def test_bad_req():
    with pytest.raises(CurrencyNotAvailableError):
        parse_exchange_rate("1.4.3 usd to cny")


def test_parse_only_from_defaults_to_cny():
    assert parse_exchange_rate("1 usd") == ExchangeRequest(1.0, "USD", "CNY")


def test_parse_without_to_keyword():
    assert parse_exchange_rate("20jpy usd") == ExchangeRequest(20.0, "JPY", "USD")


def test_is_exchange_rate_calc():
    assert is_exchange_rate_calc("100 usd to jpy")
    assert not is_exchange_rate_calc("hello 100 usd")
    assert not is_exchange_rate_calc("100 usd\n")


def test_is_available_cash():
    assert is_available_cash("USD")
    assert is_available_cash("ZWL")
    assert not is_available_cash("ABC")
    assert not is_available_cash("usd")


def test_bad_cash():
    with pytest.raises(CurrencyNotAvailableError):
        get_exchange_rate(ExchangeRequest(1.0, "ABC", "CNY"))


def test_same_currency_needs_no_rates():
    result = get_exchange_rate(ExchangeRequest(3.5, "EUR", "EUR"))
    assert result.result == 3.5
    assert result.update_at is not None and result.update_at.tzinfo is timezone.utc


def test_alias_is_applied():
    result = get_exchange_rate_with_alias(
        ExchangeRequest(5.0, "RMB", "CNY"), {"RMB": "CNY"}
    )
    assert result.result == 5.0
    assert result.request.from_currency == "CNY"


def test_get_exchange_rate_uses_one_fetch():
    with responses.RequestsMock() as rsps:
        rsps.add(
            responses.GET, "https://open.er-api.com/v6/latest/USD", json=USD_PAYLOAD
        )
        first = get_exchange_rate(parse_exchange_rate("1 usd to cny"))
        second = get_exchange_rate(parse_exchange_rate("1 cny to jpy"))
        third = get_exchange_rate(parse_exchange_rate("1 jpy to cny"))
        only_from = get_exchange_rate(parse_exchange_rate("1 usd"))
        assert len(rsps.calls) == 1
    assert first.result == pytest.approx(7.0)
    assert second.result == pytest.approx(20.0)
    assert third.result == pytest.approx(0.05)
    assert only_from.result == pytest.approx(7.0)
    assert first.update_at == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)


def test_api_exchange():
    result = _table().exchange(ExchangeRequest(2.0, "USD", "CNY"))
    assert result.result == pytest.approx(14.0)


def test_api_exchange_same_currency():
    result = _table().exchange(ExchangeRequest(2.0, "XDR", "XDR"))
    assert result.result == 2.0
    assert result.update_at is None


def test_api_exchange_missing_from():
    with pytest.raises(FromCurrencyNotFoundError):
        _table().exchange(ExchangeRequest(1.0, "EUR", "CNY"))


def test_api_exchange_missing_to():
    with pytest.raises(ToCurrencyNotFoundError):
        _table().exchange(ExchangeRequest(1.0, "USD", "EUR"))


def test_need_update():
    assert not _table().need_update()
    assert _table(time_next_update_unix=int(time.time()) - 10).need_update()


def test_update_is_noop_when_fresh():
    table = _table()
    table.update()
    assert table.rates == {"USD": 1.0, "CNY": 7.0, "JPY": 140.0}


def test_last_update_at():
    assert _table().last_update_at() == datetime(
        2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc
    )