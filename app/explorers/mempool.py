"""mempool.space REST client (Bitcoin)."""

from decimal import Decimal, InvalidOperation

import httpx

from app.core.config import get_settings
from app.core.logging import get_logger
from app.explorers.base import BlockExplorer, ChainOutput, ChainTransaction, ExplorerError

log = get_logger(__name__)


class MempoolExplorer(BlockExplorer):
    decimals = 8

    def __init__(self, base_url: str | None = None, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        settings = get_settings()
        self.base_url = (base_url or settings.explorer_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.explorer_timeout_seconds
        self._transport = transport

    async def _get(self, path: str, params: dict | None = None) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                return await client.get(url, params=params, headers={"Accept": "application/json"})
        except httpx.HTTPError as e:
            log.warning("explorer_request_failed", url=url, error=str(e))
            raise ExplorerError(f"Explorer request failed: {e}") from e

    async def get_transaction(self, txid: str) -> ChainTransaction | None:
        r = await self._get(f"/tx/{txid}")
        # mempool.space answers 400 for malformed ids and 404 for unknown ones
        if r.status_code in (400, 404):
            return None
        if r.status_code != 200:
            raise ExplorerError(f"Explorer returned {r.status_code} for tx lookup")
        data = r.json()
        status = data.get("status") or {}
        return ChainTransaction(
            txid=data.get("txid", txid),
            confirmed=bool(status.get("confirmed")),
            block_height=status.get("block_height"),
            block_time=status.get("block_time"),
            outputs=[
                ChainOutput(address=o.get("scriptpubkey_address"), value=int(o.get("value", 0)))
                for o in data.get("vout") or []
            ],
        )

    async def get_tip_height(self) -> int:
        r = await self._get("/blocks/tip/height")
        if r.status_code != 200:
            raise ExplorerError(f"Explorer returned {r.status_code} for tip height")
        try:
            return int(r.text.strip())
        except ValueError as e:
            raise ExplorerError(f"Unexpected tip height: {r.text!r}") from e

    async def get_historical_price_usd(self, timestamp: int) -> Decimal:
        r = await self._get("/v1/historical-price", params={"currency": "USD", "timestamp": timestamp})
        if r.status_code != 200:
            raise ExplorerError(f"Explorer returned {r.status_code} for historical price")
        prices = r.json().get("prices") or []
        if not prices:
            return Decimal(0)
        try:
            return Decimal(str(prices[0].get("USD", 0)))
        except InvalidOperation as e:
            raise ExplorerError("Unexpected price payload") from e
