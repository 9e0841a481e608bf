"""Device-local signing identity used as the order maker.

The hot wallet is a second keypair, separate from whatever wallet the user
connects.  It is generated on first use and stored in a JSON file on the
local machine.  This module is the only place that writes key material, and
the key never leaves the process except through that file.
"""

from __future__ import annotations

import json
import os
import tempfile
import time
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

from eth_account import Account

from errors import GridSignerError
from request_utils import TRANSPORT_ERRORS
from tokens import TokenRef
from utils import logger, short_hex

DEFAULT_STORAGE_PATH = Path.home() / ".grid_signer" / "hot_wallet.json"


@dataclass(frozen=True)
class HotWallet:
    address: str
    private_key: str

    @classmethod
    def from_key(cls, private_key: str) -> "HotWallet":
        """Build a wallet whose address is derived from ``private_key``."""
        acct = Account.from_key(private_key)
        key_hex = "0x" + bytes(acct.key).hex()
        return cls(address=acct.address, private_key=key_hex)

    def __repr__(self) -> str:
        return f"HotWallet(address={self.address!r})"


class HotWalletManager:
    """Create, persist and query the session's hot wallet.

    One manager is built per session and passed to whatever needs the maker
    identity; there is no module-level instance.
    """

    def __init__(self, storage_path: Optional[Path] = None, rpc=None):
        self.storage_path = Path(storage_path or os.getenv("HOT_WALLET_PATH") or DEFAULT_STORAGE_PATH)
        self.rpc = rpc
        self._wallet: Optional[HotWallet] = None

    @property
    def wallet(self) -> Optional[HotWallet]:
        return self._wallet

    # ------------------------------------------------------------------
    def load(self) -> Optional[HotWallet]:
        """Return the persisted wallet, or ``None`` if there is no usable one."""
        if self._wallet is not None:
            return self._wallet
        if not self.storage_path.exists():
            return None
        try:
            data = json.loads(self.storage_path.read_text(encoding="utf-8"))
            wallet = HotWallet.from_key(data["privateKey"])
        except (OSError, ValueError, KeyError, TypeError) as exc:
            logger.warning(
                "hot wallet storage unreadable, discarding | path=%s error=%s",
                self.storage_path,
                type(exc).__name__,
            )
            self._set_aside()
            return None
        stored_address = data.get("address")
        if not isinstance(stored_address, str) or stored_address.lower() != wallet.address.lower():
            logger.warning(
                "hot wallet address does not match key, discarding | path=%s stored=%s",
                self.storage_path,
                short_hex(str(stored_address)),
            )
            self._set_aside()
            return None
        self._wallet = wallet
        logger.info("hot wallet loaded | address=%s", wallet.address)
        return wallet

    def get_or_create(self) -> HotWallet:
        wallet = self.load()
        if wallet is not None:
            return wallet
        acct = Account.create()
        wallet = HotWallet.from_key("0x" + bytes(acct.key).hex())
        self._persist(wallet)
        self._wallet = wallet
        logger.info("hot wallet generated | address=%s path=%s", wallet.address, self.storage_path)
        return wallet

    def clear(self) -> None:
        """Forget the wallet in memory and remove it from storage."""
        self._wallet = None
        try:
            self.storage_path.unlink()
        except FileNotFoundError:
            pass
        logger.info("hot wallet cleared | path=%s", self.storage_path)

    def _persist(self, wallet: HotWallet) -> None:
        """Write the wallet file with owner-only permissions.

        The payload goes to a temp file next to the target and is renamed over
        it, so an interrupted write never leaves a truncated key file behind.
        """
        directory = self.storage_path.parent
        directory.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({"address": wallet.address, "privateKey": wallet.private_key})
        # mkstemp creates the file with mode 0600
        fd, tmp_name = tempfile.mkstemp(dir=directory, prefix=f".{self.storage_path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.storage_path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def _set_aside(self) -> Optional[Path]:
        """Rename an unusable wallet file so a new wallet never overwrites it."""
        backup = self.storage_path.with_name(f"{self.storage_path.name}.corrupt-{int(time.time())}")
        try:
            os.replace(self.storage_path, backup)
        except OSError as exc:
            logger.warning(
                "could not move unusable hot wallet file aside | path=%s error=%s",
                self.storage_path,
                exc,
            )
            return None
        logger.warning("unusable hot wallet file kept as backup | path=%s backup=%s", self.storage_path, backup)
        return backup

    # ------------------------------------------------------------------
    async def native_or_token_balance(self, token: TokenRef, chain_id: int) -> Decimal:
        """Balance of ``token`` held by the hot wallet.

        Balance lookups gate the UI but must never crash it: any RPC failure
        is logged and reported as a zero balance.
        """
        wallet = self.get_or_create()
        if self.rpc is None:
            logger.warning("no rpc client configured; balance reported as 0 | token=%s", token.symbol)
            return Decimal(0)
        try:
            return await self.rpc.balance_of(token, wallet.address, chain_id, decimals=token.decimals)
        except (GridSignerError, ValueError, *TRANSPORT_ERRORS) as exc:
            logger.warning(
                "balance query failed; treating as 0 | token=%s chain=%s address=%s error=%s",
                token.symbol,
                chain_id,
                wallet.address,
                exc,
            )
            return Decimal(0)
