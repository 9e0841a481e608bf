import json
import logging
import os
import sys
from decimal import Decimal
from pathlib import Path

import aiohttp
import pytest
from eth_account import Account

# Ensure src/ is importable
sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from errors import CollaboratorError  # noqa: E402
from hot_wallet import HotWallet, HotWalletManager  # noqa: E402
from tokens import TokenRef  # noqa: E402

USDC = TokenRef("USDC", "0x3c499c542cef5e3811e1192ce70d8cc03d5c3359", 6)


class StubRpc:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def balance_of(self, token, owner, chain_id, decimals=None):
        self.calls.append((token.symbol, owner, chain_id, decimals))
        if self.error is not None:
            raise self.error
        return self.result


def test_get_or_create_is_idempotent_and_persists(tmp_path):
    path = tmp_path / "wallet.json"
    manager = HotWalletManager(path)
    first = manager.get_or_create()
    assert manager.get_or_create() is first

    stored = json.loads(path.read_text())
    assert stored["address"] == first.address
    assert Account.from_key(stored["privateKey"]).address == first.address
    if os.name == "posix":
        assert path.stat().st_mode & 0o777 == 0o600

    reloaded = HotWalletManager(path).get_or_create()
    assert reloaded == first


def test_load_returns_none_without_storage(tmp_path):
    assert HotWalletManager(tmp_path / "missing.json").load() is None


def test_malformed_storage_is_discarded(tmp_path, caplog):
    path = tmp_path / "wallet.json"
    path.write_text("{not json")
    manager = HotWalletManager(path)
    caplog.set_level(logging.WARNING, logger="grid_signer")

    assert manager.load() is None
    assert "unreadable" in caplog.text
    backups = list(tmp_path.glob("wallet.json.corrupt-*"))
    assert len(backups) == 1
    assert backups[0].read_text() == "{not json"

    wallet = manager.get_or_create()
    assert json.loads(path.read_text())["address"] == wallet.address
    assert backups[0].read_text() == "{not json"


def test_address_mismatch_is_discarded(tmp_path, caplog):
    path = tmp_path / "wallet.json"
    key = Account.create().key
    other = Account.create().address
    original = json.dumps({"address": other, "privateKey": "0x" + bytes(key).hex()})
    path.write_text(original)
    caplog.set_level(logging.WARNING, logger="grid_signer")

    assert HotWalletManager(path).load() is None
    assert "does not match" in caplog.text
    assert not path.exists()
    assert [p.read_text() for p in tmp_path.glob("wallet.json.corrupt-*")] == [original]


def test_failed_set_aside_only_warns(tmp_path, caplog, monkeypatch):
    path = tmp_path / "wallet.json"
    path.write_text("[]")

    def refuse(src, dst):
        raise PermissionError("read-only")

    monkeypatch.setattr(os, "replace", refuse)
    caplog.set_level(logging.WARNING, logger="grid_signer")

    assert HotWalletManager(path).load() is None
    assert "could not move" in caplog.text
    assert path.read_text() == "[]"


def test_persist_replaces_file_without_leftovers(tmp_path):
    path = tmp_path / "wallet.json"
    manager = HotWalletManager(path)
    first = manager.get_or_create()
    manager.clear()
    second = manager.get_or_create()

    assert json.loads(path.read_text())["address"] == second.address != first.address
    assert [p.name for p in tmp_path.iterdir()] == ["wallet.json"]


def test_interrupted_write_keeps_previous_file(tmp_path, monkeypatch):
    path = tmp_path / "wallet.json"
    manager = HotWalletManager(path)
    wallet = manager.get_or_create()
    before = path.read_text()

    def crash(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", crash)
    with pytest.raises(OSError, match="disk full"):
        manager._persist(HotWallet.from_key("0x" + "22" * 32))

    assert path.read_text() == before
    assert [p.name for p in tmp_path.iterdir()] == ["wallet.json"]
    assert HotWalletManager(path).load() == wallet


def test_clear_forgets_wallet(tmp_path):
    path = tmp_path / "wallet.json"
    manager = HotWalletManager(path)
    first = manager.get_or_create()
    manager.clear()
    assert manager.wallet is None
    assert not path.exists()
    assert manager.get_or_create().address != first.address
    # clearing twice is harmless
    manager.clear()
    manager.clear()


def test_private_key_is_not_in_repr():
    wallet = HotWallet.from_key("0x" + "11" * 32)
    assert "11" * 32 not in repr(wallet)
    assert wallet.address == Account.from_key("0x" + "11" * 32).address


@pytest.mark.asyncio
async def test_balance_uses_rpc_for_hot_wallet(tmp_path):
    rpc = StubRpc(result=Decimal("4.2"))
    manager = HotWalletManager(tmp_path / "w.json", rpc=rpc)
    assert await manager.native_or_token_balance(USDC, 137) == Decimal("4.2")
    assert rpc.calls == [("USDC", manager.wallet.address, 137, 6)]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [CollaboratorError("rpc", "boom"), aiohttp.ClientConnectionError("down"), ValueError("bad hex")],
)
async def test_balance_failure_reports_zero_and_warns(tmp_path, caplog, error):
    manager = HotWalletManager(tmp_path / "w.json", rpc=StubRpc(error=error))
    caplog.set_level(logging.WARNING, logger="grid_signer")
    assert await manager.native_or_token_balance(USDC, 137) == Decimal(0)
    assert "balance query failed" in caplog.text


@pytest.mark.asyncio
async def test_balance_without_rpc_is_zero(tmp_path):
    manager = HotWalletManager(tmp_path / "w.json")
    assert await manager.native_or_token_balance(USDC, 137) == Decimal(0)
