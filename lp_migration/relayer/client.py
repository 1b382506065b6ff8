"""JSON-RPC client for the transaction relayer that signs and submits liquidity operations."""
import logging
import ssl
from typing import Any

import aiohttp
import certifi

from ..config import RelayerConfig
from ..errors import RelayerError
from ..models import Position, TxResult, to_dict

logger = logging.getLogger(__name__)


class RelayerClient:
    """Liquidity operations over JSON-RPC with automatic endpoint fallback."""

    def __init__(self, config: RelayerConfig) -> None:
        self.endpoints = list(config.endpoints)
        self.timeout = config.timeout
        self.current_rpc_index = 0
        self._request_id = 0

    async def rpc_call(self, method: str, params: list[Any]) -> dict[str, Any]:
        """Make RPC call with fallback to alternative endpoints."""
        if not self.endpoints:
            raise RelayerError("No relayer endpoints configured")

        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }

        ssl_context = ssl.create_default_context(cafile=certifi.where())

        last_error: Exception | None = None
        for attempt in range(len(self.endpoints)):
            rpc_index = (self.current_rpc_index + attempt) % len(self.endpoints)
            rpc_url = self.endpoints[rpc_index]

            try:
                connector = aiohttp.TCPConnector(ssl=ssl_context)
                async with aiohttp.ClientSession(connector=connector) as session:
                    async with session.post(
                        rpc_url,
                        json=payload,
                        timeout=aiohttp.ClientTimeout(total=self.timeout),
                    ) as response:
                        result = await response.json()
                        if "error" in result:
                            # The relayer answered: do not resubmit elsewhere.
                            return {"error": result["error"]}

                        if rpc_index != self.current_rpc_index:
                            logger.info("Switched to relayer endpoint: %s", rpc_url)
                            self.current_rpc_index = rpc_index

                        return result.get("result", {})
            except Exception as e:
                last_error = e
                logger.warning("Relayer endpoint %s failed: %s", rpc_url, e)
                if attempt < len(self.endpoints) - 1:
                    logger.info("Trying next endpoint...")
                continue

        raise RelayerError(f"All relayer endpoints failed. Last error: {last_error}")

    async def _submit(self, method: str, params: list[Any]) -> TxResult:
        try:
            result = await self.rpc_call(method, params)
        except RelayerError as e:
            logger.error("%s failed: %s", method, e)
            return TxResult(success=False, error=str(e))

        if "error" in result:
            error = result["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            logger.error("%s rejected by relayer: %s", method, message)
            return TxResult(success=False, error=message)

        amounts = {
            str(k): float(v) for k, v in (result.get("amounts") or {}).items()
        }
        return TxResult(
            success=bool(result.get("success", True)),
            tx_id=str(result.get("txId", result.get("signature", ""))),
            amounts=amounts,
            error=str(result.get("error", "")),
        )

    async def claim_fees(self, position: Position, owner: str) -> TxResult:
        return await self._submit(
            "lp_claimFees",
            [{"positionId": position.id, "poolAddress": position.pool_address, "owner": owner}],
        )

    async def remove_liquidity(self, position: Position, owner: str) -> TxResult:
        return await self._submit(
            "lp_removeLiquidity",
            [{"position": to_dict(position), "owner": owner}],
        )

    async def add_liquidity(
        self, pool_address: str, amounts: dict[str, float], owner: str
    ) -> TxResult:
        return await self._submit(
            "lp_addLiquidity",
            [{"poolAddress": pool_address, "amounts": amounts, "owner": owner}],
        )
