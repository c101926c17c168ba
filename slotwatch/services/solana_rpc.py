"""
HTTP JSON-RPC client for snapshot reads.
The pull half of the watcher transports.
"""

import itertools
import logging
from typing import Any, Dict, List, Optional, Tuple

import httpx

from slotwatch.config import settings
from slotwatch.errors import NetworkError, RpcError, ValidationError
from slotwatch.util.async_tools import CancellationToken

logger = logging.getLogger("solana_rpc")


class SolanaRpcClient:
    """Minimal async JSON-RPC 2.0 client over httpx."""

    def __init__(self, url: str, *, timeout: Optional[float] = None,
                 client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self._client = client or httpx.AsyncClient(timeout=timeout or settings.RPC_HTTP_TIMEOUT_S)
        self._owns_client = client is None
        self._ids = itertools.count(1)
        self.request_count = 0
        self.error_count = 0

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SolanaRpcClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def request(self, method: str, params: Optional[List[Any]] = None, *,
                      token: Optional[CancellationToken] = None) -> Any:
        """Send one call; returns ``result`` or raises RpcError / NetworkError."""
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params or []}
        if token is None:
            return await self._post(payload)
        return await token.guard(self._post(payload))

    async def _post(self, payload: Dict[str, Any]) -> Any:
        method = payload["method"]
        self.request_count += 1
        try:
            response = await self._client.post(self.url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            self.error_count += 1
            raise NetworkError(
                f"RPC {method} returned HTTP {e.response.status_code}",
                details={"method": method, "status": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            self.error_count += 1
            raise NetworkError(
                f"RPC {method} failed: {str(e) or type(e).__name__}",
                details={"method": method},
            ) from e

        try:
            body = response.json()
        except ValueError as e:
            self.error_count += 1
            raise ValidationError(f"RPC {method} returned non-JSON body", details={"method": method}) from e

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            self.error_count += 1
            raise RpcError(
                error.get("message", "RPC error"),
                code=error.get("code"),
                details={"method": method, "data": error.get("data")},
            )

        logger.debug(f"[solana_rpc] {method} ok")
        return body.get("result")

    async def get_account_info(
        self,
        address: str,
        *,
        commitment: str = "confirmed",
        encoding: str = "base64",
        token: Optional[CancellationToken] = None,
    ) -> Tuple[int, Optional[Dict[str, Any]]]:
        """Return ``(slot, raw_account)``; raw_account is None if the account does not exist."""
        result = await self.request(
            "getAccountInfo",
            [address, {"commitment": commitment, "encoding": encoding}],
            token=token,
        )
        try:
            return int(result["context"]["slot"]), result.get("value")
        except (KeyError, TypeError) as e:
            raise ValidationError(
                "getAccountInfo result is missing context.slot", details={"address": address}
            ) from e

    async def get_slot(self, *, commitment: str = "confirmed",
                       token: Optional[CancellationToken] = None) -> int:
        return int(await self.request("getSlot", [{"commitment": commitment}], token=token))
