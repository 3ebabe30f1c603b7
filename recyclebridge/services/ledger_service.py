# ledger_service.py

from __future__ import annotations
import itertools
import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx
from Crypto.Hash import keccak

from recyclebridge.core.exceptions import ConfigurationError, ScanFetchError
from recyclebridge.models.device_models import LedgerConfig, PurchaseEvent


logger = logging.getLogger(__name__)


def event_topic(signature: str) -> str:
    """topic0 of an EVM event: 0x-prefixed keccak-256 of its canonical signature."""
    digest = keccak.new(digest_bits=256, data=signature.encode("ascii"))
    return "0x" + digest.hexdigest()


class LedgerClient(Protocol):
    async def get_current_position(self) -> int: ...

    async def get_logs(self, from_position: int, to_position: int, event_signature: str) -> List[Dict[str, Any]]: ...

    def decode(self, raw_log: Dict[str, Any]) -> Optional[PurchaseEvent]: ...


class EvmLedgerService:
    """
    Reads ContentsPurchased logs from an EVM node over JSON-RPC.

    Only `eth_blockNumber` and `eth_getLogs` are used; nothing is signed or
    verified. Every transport, HTTP or JSON-RPC failure is raised as
    ScanFetchError.
    """

    def __init__(self, cfg: LedgerConfig, client: Optional[httpx.AsyncClient] = None):
        self.cfg = cfg
        self.address = cfg.contract_address.lower()
        self.topic = event_topic(cfg.event_signature)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=cfg.timeout)
        self._ids = itertools.count(1)

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()

    # ---- LedgerClient ----
    async def get_current_position(self) -> int:
        result = await self._rpc("eth_blockNumber", [])
        try:
            return int(result, 16)
        except (TypeError, ValueError) as e:
            raise ScanFetchError(f"eth_blockNumber returned an invalid block number: {result!r}") from e

    async def get_logs(self, from_position: int, to_position: int, event_signature: str = None) -> List[Dict[str, Any]]:
        # decode() only understands the configured event layout
        if event_signature not in (None, self.cfg.event_signature):
            raise ConfigurationError(
                f"Ledger service decodes {self.cfg.event_signature}, cannot fetch {event_signature}")
        logs = await self._rpc("eth_getLogs", [{
            "fromBlock": hex(from_position),
            "toBlock":   hex(to_position),
            "address":   self.cfg.contract_address,
            "topics":    [self.topic],
        }])
        if not isinstance(logs, list):
            raise ScanFetchError(f"eth_getLogs returned {type(logs).__name__}, expected a list")
        logger.debug(f"Fetched {len(logs)} logs for blocks {from_position}..{to_position}")
        return logs

    def decode(self, raw_log: Dict[str, Any]) -> Optional[PurchaseEvent]:
        """ContentsPurchased(uint256 indexed garbageCanId, address indexed collector, uint256 value)"""
        topics = raw_log.get("topics") or []
        if len(topics) < 3 or str(topics[0]).lower() != self.topic:
            return None
        address = str(raw_log.get("address", self.address)).lower()
        if address != self.address:
            return None
        try:
            data = raw_log.get("data") or "0x"
            block = raw_log.get("blockNumber")
            return PurchaseEvent(
                subject_id = int(topics[1], 16),
                actor      = "0x" + str(topics[2])[-40:],
                amount     = int(data[2:66] or "0", 16),
                position   = int(block, 16) if block else None,
                tx_hash    = raw_log.get("transactionHash"),
            )
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed log {raw_log.get('transactionHash')}: {e}")
            return None

    # ---- JSON-RPC helper ----
    async def _rpc(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        try:
            resp = await self._client.post(self.cfg.rpc_url, json=payload)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ScanFetchError(f"{method} failed: {e}") from e
        if not isinstance(body, dict):
            raise ScanFetchError(f"{method} returned a malformed response")
        if "error" in body:
            err = body["error"] or {}
            message = err.get("message", err) if isinstance(err, dict) else err
            raise ScanFetchError(f"{method} failed: {message}")
        if "result" not in body:
            raise ScanFetchError(f"{method} returned no result")
        return body["result"]
