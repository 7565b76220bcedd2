"""
On-chain price read for the GLW early liquidity contract.

web3's HTTP provider is synchronous, so the call is pushed onto the default
executor to keep the event loop free.
"""

import asyncio
import logging
from typing import Optional

from web3 import Web3

from glowstats.config import get_settings
from glowstats.errors import ParseError, UpstreamFetchError

logger = logging.getLogger(__name__)

_SOURCE: str = "glow-contract"

# getCurrentPrice() returns USDC with 4 implied decimals
PRICE_DIVISOR: int = 10_000

GLOW_PRICE_ABI: list[dict] = [
    {
        "inputs": [],
        "name": "getCurrentPrice",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class GlowContractClient:
    """Reads the current GLW price from the on-chain contract."""

    def __init__(
        self,
        node_url: Optional[str] = None,
        contract_address: Optional[str] = None,
        timeout: Optional[float] = None,
        w3: Optional[Web3] = None,
    ) -> None:
        settings = get_settings()
        self._timeout: float = timeout or settings.upstream_timeout
        self._w3: Web3 = w3 or Web3(
            Web3.HTTPProvider(
                node_url or settings.infura_url,
                request_kwargs={"timeout": self._timeout},
            )
        )
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(
                contract_address or settings.glow_price_contract_address
            ),
            abi=GLOW_PRICE_ABI,
        )

    def _get_current_price_sync(self) -> int:
        return self._contract.functions.getCurrentPrice().call()

    async def get_current_price(self) -> float:
        """
        Return the contract's current GLW price in USD.

        Raises:
            UpstreamFetchError: When the node call fails or exceeds the timeout.
            ParseError: When the contract returns a non-integer value.
        """
        loop = asyncio.get_running_loop()
        try:
            raw = await asyncio.wait_for(
                loop.run_in_executor(None, self._get_current_price_sync),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("getCurrentPrice() timed out after %.0fs", self._timeout)
            raise UpstreamFetchError(_SOURCE, "getCurrentPrice() timed out") from exc
        except Exception as exc:
            logger.error("getCurrentPrice() failed: %s", exc)
            raise UpstreamFetchError(_SOURCE, f"getCurrentPrice() failed: {exc}") from exc

        if isinstance(raw, bool) or not isinstance(raw, int):
            raise ParseError(f"{_SOURCE}: getCurrentPrice() returned {raw!r}")
        return raw / PRICE_DIVISOR
