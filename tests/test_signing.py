import dataclasses
import sys
from pathlib import Path

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

# Ensure src/ is importable
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from errors import SigningError  # noqa: E402
from limit_order import Side, TradeIntent, build_order  # noqa: E402
from signing import (  # noqa: E402
    LIMIT_ORDER_PROTOCOL_ADDRESS,
    ExternalSigner,
    PrivateKeySigner,
    order_hash,
    recover_signer,
    sign_order,
    typed_data,
)
from tokens import TokenRef  # noqa: E402

KEY = "0x" + "4c" * 32
ACCOUNT = Account.from_key(KEY)
WETH = TokenRef("WETH", "0x7ceb23fd6bc0add59e62ac25578270cff1b9f619", 18)
USDC = TokenRef("USDC", "0x3c499c542cef5e3811e1192ce70d8cc03d5c3359", 6)


def _order(maker=ACCOUNT.address):
    intent = TradeIntent(Side.SELL, 2340, "0.1", "WETH")
    return build_order(intent, WETH, USDC, maker, 137, now=1_700_000_000)


def test_typed_data_domain_and_message():
    order = _order()
    data = typed_data(order, 137)
    assert data["primaryType"] == "Order"
    assert data["domain"] == {
        "name": "1inch Aggregation Router",
        "version": "6",
        "chainId": 137,
        "verifyingContract": LIMIT_ORDER_PROTOCOL_ADDRESS,
    }
    message = data["message"]
    assert message["makingAmount"] == 10**17
    assert message["makerTraits"] == order.maker_traits
    assert [f["name"] for f in data["types"]["Order"]] == [
        "salt", "maker", "receiver", "makerAsset", "takerAsset",
        "makingAmount", "takingAmount", "makerTraits",
    ]


def test_order_hash_is_deterministic_and_field_sensitive():
    order = _order()
    digest = order_hash(order, 137)
    assert digest == order_hash(order, 137)
    assert digest.startswith("0x") and len(digest) == 66

    assert order_hash(dataclasses.replace(order, salt=order.salt + 1), 137) != digest
    assert order_hash(dataclasses.replace(order, making_amount=order.making_amount + 1), 137) != digest
    assert order_hash(order, 1) != digest


@pytest.mark.asyncio
async def test_local_key_signature_recovers_to_maker():
    order = _order()
    signed = await sign_order(order, 137, PrivateKeySigner(KEY))
    assert signed.order is order
    assert signed.order_hash == order_hash(order, 137)
    assert len(signed.signature) == 132
    assert recover_signer(order, 137, signed.signature) == ACCOUNT.address


@pytest.mark.asyncio
async def test_key_that_is_not_the_maker_is_rejected():
    order = _order(maker=Account.create().address)
    with pytest.raises(SigningError, match="not maker"):
        await sign_order(order, 137, PrivateKeySigner(KEY))


@pytest.mark.asyncio
async def test_external_signer_receives_typed_data():
    seen = []

    async def wallet_sign(data):
        seen.append(data)
        return Account.sign_message(encode_typed_data(full_message=data), private_key=KEY).signature

    order = _order()
    signed = await sign_order(order, 137, ExternalSigner(ACCOUNT.address, wallet_sign))
    assert seen == [typed_data(order, 137)]
    assert signed.signature.startswith("0x")
    assert recover_signer(order, 137, signed.signature) == ACCOUNT.address


@pytest.mark.asyncio
async def test_external_rejection_becomes_signing_error():
    async def declined(data):
        raise RuntimeError("User rejected the request")

    with pytest.raises(SigningError) as exc:
        await sign_order(_order(), 137, ExternalSigner(ACCOUNT.address, declined))
    assert exc.value.reason == "User rejected the request"
    assert isinstance(exc.value.cause, RuntimeError)


@pytest.mark.asyncio
async def test_garbage_signature_is_rejected():
    async def garbage(data):
        return "0x1234"

    with pytest.raises(SigningError):
        await sign_order(_order(), 137, ExternalSigner(ACCOUNT.address, garbage))


def test_signer_repr_hides_key():
    assert KEY[2:] not in repr(PrivateKeySigner(KEY))
