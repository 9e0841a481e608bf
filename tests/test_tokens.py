import sys
from pathlib import Path

import pytest

# Ensure src/ is importable
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from errors import InvalidAddressError, TokenNotFoundError  # noqa: E402
from tokens import NATIVE_ADDRESS, TokenList, TokenRef, is_native, is_valid_address  # noqa: E402

USDC = "0x3c499c542cef5e3811e1192ce70d8cc03d5c3359"
WETH = "0x7ceb23fd6bc0add59e62ac25578270cff1b9f619"
WBTC = "0x1bfd67037b42cf73acf2047067bd4f2c47d9bfd6"


def _payload():
    return {
        "tokens": {
            USDC: {"symbol": "USDC", "name": "USD Coin", "decimals": 6},
            WETH: {"symbol": "WETH", "name": "Wrapped Ether", "decimals": 18},
            WBTC: {"symbol": "WBTC", "name": "Wrapped BTC", "decimals": 8},
            NATIVE_ADDRESS: {"symbol": "POL", "name": "Polygon Ecosystem Token", "decimals": 18},
            "0xnotanaddress": {"symbol": "BAD", "decimals": 18},
            "0x0000000000000000000000000000000000000001": {"symbol": "NODEC"},
        }
    }


def test_payload_skips_unusable_entries():
    tokens = TokenList.from_payload(137, _payload())
    assert len(tokens) == 4
    assert {t.symbol for t in tokens} == {"USDC", "WETH", "WBTC", "POL"}


def test_bare_mapping_payload_is_accepted():
    tokens = TokenList.from_payload(137, _payload()["tokens"])
    assert len(tokens) == 4


def test_resolve_is_case_insensitive_and_suggests_close_matches():
    tokens = TokenList.from_payload(137, _payload())
    assert tokens.resolve("usdc").address == USDC

    with pytest.raises(TokenNotFoundError) as exc:
        tokens.resolve("WETH2")
    assert "WETH" in exc.value.suggestions
    assert "did you mean" in str(exc.value)


def test_search_orders_exact_then_prefix_then_alpha():
    tokens = TokenList.from_payload(137, _payload())
    assert [t.symbol for t in tokens.search("wbtc")] == ["WBTC"]
    # "w" matches WETH and WBTC by symbol and POL/USDC not at all
    assert [t.symbol for t in tokens.search("w")] == ["WBTC", "WETH"]
    assert len(tokens.search("  ")) == 4


def test_popular_tokens_follow_popularity_order():
    tokens = TokenList.from_payload(137, _payload())
    assert [t.symbol for t in tokens.popular()] == ["WETH", "USDC", "WBTC"]


def test_by_address_ignores_case():
    tokens = TokenList.from_payload(137, _payload())
    assert tokens.by_address(WETH.upper().replace("0X", "0x")).symbol == "WETH"


def test_token_ref_validation():
    with pytest.raises(InvalidAddressError):
        TokenRef("BAD", "0x1234", 18)
    with pytest.raises(ValueError):
        TokenRef("BAD", USDC, -1)
    assert TokenRef("POL", NATIVE_ADDRESS, 18).native


def test_address_helpers():
    assert is_valid_address(USDC)
    assert not is_valid_address("0x")
    assert not is_valid_address(None)
    assert is_native(NATIVE_ADDRESS.upper().replace("0X", "0x"))
    assert not is_native(USDC)
