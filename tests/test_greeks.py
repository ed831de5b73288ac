import pytest

from options_platform.greeks import calculate_option_delta, enrich_chain_with_delta

AS_OF = "2024-01-01"


def test_at_the_money_call_and_put_delta():
    call = calculate_option_delta(100, 100, 0.2, "2024-12-31", "call", as_of=AS_OF)
    put = calculate_option_delta(100, 100, 0.2, "2024-12-31", "put", as_of=AS_OF)

    assert 0.5 < call < 0.7
    assert put == pytest.approx(call - 1, abs=1e-4)


def test_deep_in_the_money_call_is_near_one():
    assert calculate_option_delta(200, 100, 0.2, "2024-03-01", "Call", as_of=AS_OF) > 0.99


@pytest.mark.parametrize(
    "price, strike, iv, expiration",
    [
        (100, 100, 0.2, "2023-12-01"),  # expired
        (100, 100, 0, "2024-06-01"),
        (100, 100, "n/a", "2024-06-01"),
        (100, 100, 0.2, "not-a-date"),
    ],
)
def test_unusable_inputs_return_none(price, strike, iv, expiration):
    assert calculate_option_delta(price, strike, iv, expiration, "call", as_of=AS_OF) is None


def test_enrich_only_fills_missing_delta():
    contracts = [
        {"strike": 100, "iv": 0.25, "expiration": "2024-06-01", "type": "put", "delta": None},
        {"strike": 100, "iv": 0.25, "expiration": "2024-06-01", "type": "call", "delta": 0.42},
        {"strike": 100, "iv": None, "expiration": "2024-06-01", "type": "call"},
    ]
    enriched = enrich_chain_with_delta(contracts, 100, as_of=AS_OF)

    assert enriched[0]["delta"] < 0
    assert enriched[1]["delta"] == 0.42
    assert "delta" not in enriched[2]
    assert contracts[0]["delta"] is None
