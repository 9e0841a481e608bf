"""EIP-712 typed data, order hashes and signatures for limit orders."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Union

from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_keys.exceptions import BadSignature, ValidationError
from eth_utils import is_hex, keccak, to_checksum_address

from errors import SigningError
from limit_order import LimitOrder
from utils import logger, short_hex

DOMAIN_NAME = "1inch Aggregation Router"
DOMAIN_VERSION = "6"

LIMIT_ORDER_PROTOCOL_ADDRESS = "0x111111125421cA6dc452d289314280a0f8842A65"
# chains where the router lives at a different address
_PROTOCOL_ADDRESS_OVERRIDES = {
    324: "0x6fd4383cB451173D5f9304F041C7BCBf27d561fF",
}

EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]

ORDER_TYPE = [
    {"name": "salt", "type": "uint256"},
    {"name": "maker", "type": "address"},
    {"name": "receiver", "type": "address"},
    {"name": "makerAsset", "type": "address"},
    {"name": "takerAsset", "type": "address"},
    {"name": "makingAmount", "type": "uint256"},
    {"name": "takingAmount", "type": "uint256"},
    {"name": "makerTraits", "type": "uint256"},
]


@dataclass(frozen=True)
class PrivateKeySigner:
    """Sign locally with a raw key (the hot wallet path)."""

    private_key: str

    def __repr__(self) -> str:
        return "PrivateKeySigner(<redacted>)"


@dataclass(frozen=True)
class ExternalSigner:
    """Delegate to a user-controlled wallet.

    ``sign_typed_data`` receives the full typed-data dict and returns the
    signature as 0x-hex (or bytes).  It may wait on a human indefinitely.
    """

    address: str
    sign_typed_data: Callable[[Dict[str, Any]], Awaitable[Union[str, bytes]]]


Signer = Union[PrivateKeySigner, ExternalSigner]


@dataclass(frozen=True)
class SignedOrder:
    order: LimitOrder
    signature: str
    order_hash: str


def verifying_contract(chain_id: int) -> str:
    return _PROTOCOL_ADDRESS_OVERRIDES.get(chain_id, LIMIT_ORDER_PROTOCOL_ADDRESS)


def typed_data(order: LimitOrder, chain_id: int) -> Dict[str, Any]:
    """Full EIP-712 payload for ``order`` bound to ``chain_id``."""
    return {
        "types": {"EIP712Domain": EIP712_DOMAIN_TYPE, "Order": ORDER_TYPE},
        "primaryType": "Order",
        "domain": {
            "name": DOMAIN_NAME,
            "version": DOMAIN_VERSION,
            "chainId": int(chain_id),
            "verifyingContract": verifying_contract(chain_id),
        },
        "message": {
            "salt": order.salt,
            "maker": to_checksum_address(order.maker),
            "receiver": to_checksum_address(order.receiver),
            "makerAsset": to_checksum_address(order.maker_asset),
            "takerAsset": to_checksum_address(order.taker_asset),
            "makingAmount": order.making_amount,
            "takingAmount": order.taking_amount,
            "makerTraits": order.maker_traits,
        },
    }


def _signable(order: LimitOrder, chain_id: int) -> SignableMessage:
    return encode_typed_data(full_message=typed_data(order, chain_id))


def order_hash(order: LimitOrder, chain_id: int) -> str:
    """EIP-712 digest of ``order``; the same value the orderbook computes."""
    msg = _signable(order, chain_id)
    digest = keccak(b"\x19" + msg.version + msg.header + msg.body)
    return "0x" + digest.hex()


def _to_hex(signature: Union[str, bytes]) -> str:
    if isinstance(signature, (bytes, bytearray)):
        return "0x" + bytes(signature).hex()
    if isinstance(signature, str):
        signature = signature if signature.startswith("0x") else "0x" + signature
        # r, s and v: 65 bytes
        if len(signature) != 132 or not is_hex(signature):
            raise SigningError(f"malformed signature: {signature!r}")
        return signature
    raise SigningError(f"signer returned {type(signature).__name__}, expected hex")


def recover_signer(order: LimitOrder, chain_id: int, signature: str) -> str:
    return Account.recover_message(_signable(order, chain_id), signature=signature)


async def sign_order(order: LimitOrder, chain_id: int, signer: Signer) -> SignedOrder:
    """Sign ``order`` and attach its hash.

    A local key signs without any I/O.  An external signer is awaited and
    its failure (user declined, wallet gone) surfaces as ``SigningError``.
    Either way the signature must recover to ``order.maker``.
    """
    if isinstance(signer, PrivateKeySigner):
        try:
            signed = Account.sign_message(_signable(order, chain_id), private_key=signer.private_key)
        except (ValueError, TypeError) as exc:
            raise SigningError(f"local key rejected: {exc}", cause=exc) from exc
        signature = "0x" + bytes(signed.signature).hex()
    elif isinstance(signer, ExternalSigner):
        try:
            raw = await signer.sign_typed_data(typed_data(order, chain_id))
        except SigningError:
            raise
        except Exception as exc:  # wallet bridges raise anything; keep the reason
            raise SigningError(str(exc) or type(exc).__name__, cause=exc) from exc
        signature = _to_hex(raw)
    else:
        raise TypeError(f"Unsupported signer: {type(signer).__name__}")

    try:
        recovered = recover_signer(order, chain_id, signature)
    except (ValueError, TypeError, BadSignature, ValidationError) as exc:
        raise SigningError(f"malformed signature: {exc}", cause=exc) from exc
    if recovered.lower() != order.maker.lower():
        raise SigningError(
            f"signature recovers to {recovered}, not maker {order.maker}"
        )

    digest = order_hash(order, chain_id)
    logger.debug("order signed | maker=%s hash=%s", short_hex(order.maker), short_hex(digest))
    return SignedOrder(order=order, signature=signature, order_hash=digest)
