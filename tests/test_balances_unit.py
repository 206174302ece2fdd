import pytest

from tradebot.errors import BalanceUnavailableError
from tradebot.execution.balances import (
    ERC20_BALANCE_PATTERNS,
    load_assets,
    parse_balance,
    to_base_units,
    wallet_balance_patterns,
)


def test_wallet_details_reply_is_parsed_in_whole_units():
    reply = "Wallet Details:\n- Address: 0xabc\n- Network: base-sepolia\n- ETH Balance: 0.012345 ETH\n"
    assert parse_balance(reply, wallet_balance_patterns("eth")) == pytest.approx(0.012345)


def test_erc20_reply_patterns_are_tried_in_order():
    assert parse_balance("Balance of 0x8768 is 2500000", ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(2.5)
    assert parse_balance("Token balance: 100000", ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(0.1)
    assert parse_balance("  42000000 ", ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(42.0)


def test_structured_replies_skip_text_parsing():
    assert parse_balance(1500000, ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(1.5)
    assert parse_balance({"balance": "3000000"}, ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(3.0)
    assert parse_balance(0.25, wallet_balance_patterns("eth")) == pytest.approx(0.25)


def test_unparseable_reply_is_an_error_not_a_zero_balance():
    with pytest.raises(BalanceUnavailableError):
        parse_balance("Error getting balance for 0x876852425331a113d8E432eFFB3aC5BEf38f033a", ERC20_BALANCE_PATTERNS, decimals=6)

    with pytest.raises(BalanceUnavailableError):
        parse_balance("Wallet Details: no balance reported", wallet_balance_patterns("eth"))

    with pytest.raises(BalanceUnavailableError):
        parse_balance(None, ERC20_BALANCE_PATTERNS)

    with pytest.raises(BalanceUnavailableError):
        parse_balance(True, ERC20_BALANCE_PATTERNS)


def test_to_base_units_rounds_down():
    assert to_base_units(0.00005, 18) == 50_000_000_000_000
    assert to_base_units(0.1, 6) == 100_000
    assert to_base_units(0.0000001, 6) == 0


def test_load_assets_normalises_ids():
    assets = load_assets({"assets": {"ETH": {"decimals": 18}, "usdc": {"decimals": 6, "contract_address": "0x1"}}})
    assert set(assets) == {"eth", "usdc"}
    assert not assets["eth"].is_token
    assert assets["usdc"].is_token and assets["usdc"].decimals == 6


def test_decimal_erc20_replies_are_whole_units():
    assert parse_balance("Balance of 0x8768... is 0.5", ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(0.5)
    assert parse_balance("USDC Balance: 2.5 USDC", ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(2.5)
    assert parse_balance("Balance of 0x8768 is 2500000.", ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(2.5)
    assert parse_balance(" 0.75 ", ERC20_BALANCE_PATTERNS, decimals=6) == pytest.approx(0.75)


def test_malformed_decimal_is_not_truncated():
    with pytest.raises(BalanceUnavailableError):
        parse_balance("Balance of 0x8768 is 1.2.3", ERC20_BALANCE_PATTERNS, decimals=6)
