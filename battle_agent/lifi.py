"""
LI.FI REST client for cross-chain swaps and bridges into battle pools.

Only assembles requests and normalizes responses; routing and execution are
done by LI.FI and the user's wallet.
"""

import logging

import requests

from battle_agent import config

logger = logging.getLogger(__name__)

SUPPORTED_CHAINS = {
    "ETHEREUM": 1,
    "ARBITRUM": 42161,
    "OPTIMISM": 10,
    "BASE": 8453,
    "POLYGON": 137,
    # Testnets
    "SEPOLIA": 11155111,
    "ARBITRUM_SEPOLIA": 421614,
    "BASE_SEPOLIA": 84532,
}

USDC_BY_CHAIN = {
    1: "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48",
    42161: "0xaf88d065e77c8cC2239327C5EDb3A432268e5831",
    8453: "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913",
    137: "0x3c499c542cEF5E3811e1192ce70d8cC03d5c3359",
    10: "0x0b2C639c533813f4Aa9D7837CAf62653d097Ff85",
    11155111: "0x1c7D4B196Cb0C7B01d743Fbc6116a902379C7238",
}

WETH_BY_CHAIN = {
    1: "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2",
    42161: "0x82aF49447D8a07e3bd95BD0d56f35241523fBab1",
    8453: "0x4200000000000000000000000000000000000006",
    137: "0x7ceB23fD6bC0adD59E62ac25578270cFf1b9f619",
    10: "0x4200000000000000000000000000000000000006",
}


def format_amount(amount, decimals: int = 18) -> str:
    """Render a raw token amount with four fractional digits."""
    value = int(amount)
    integer_part, fractional_part = divmod(value, 10**decimals)
    return f"{integer_part}.{str(fractional_part).rjust(decimals, '0')[:4]}"


def calculate_lp_split(
    total_amount_usd: int,
    token0_price_usd: int,
    token1_price_usd: int,
    current_tick: int,
    tick_lower: int,
    tick_upper: int,
) -> tuple[int, int]:
    """Token amounts (18 decimals) for a concentrated position.

    A tick at the lower bound needs all token0, at the upper bound all token1.
    """
    range_width = tick_upper - tick_lower
    if range_width <= 0:
        raise ValueError("tick_upper must be above tick_lower")
    if token0_price_usd <= 0 or token1_price_usd <= 0:
        raise ValueError("token prices must be positive")
    position_in_range = max(0.0, min(1.0, (current_tick - tick_lower) / range_width))
    token0_ratio = 1.0 - position_in_range

    amount0_usd = total_amount_usd * int(token0_ratio * 1000) // 1000
    amount1_usd = total_amount_usd - amount0_usd
    amount0 = amount0_usd * 10**18 // token0_price_usd
    amount1 = amount1_usd * 10**18 // token1_price_usd
    return amount0, amount1


class LiFiClient:
    """Thin wrapper over the LI.FI /quote, /advanced/routes and /status endpoints."""

    def __init__(self, base_url=None, integrator=None, api_key=None, timeout=None, session=None):
        self.base_url = (base_url or config.LIFI_API_URL).rstrip("/")
        self.integrator = integrator or config.LIFI_INTEGRATOR
        self.timeout = timeout or config.HTTP_TIMEOUT
        self.session = session or requests.Session()
        self.headers = {"Accept": "application/json"}
        api_key = api_key if api_key is not None else config.LIFI_API_KEY
        if api_key:
            self.headers["x-lifi-api-key"] = api_key

    def get_quote(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str,
        to_token: str,
        from_amount,
        user_address: str,
        slippage: float = config.DEFAULT_SLIPPAGE,
    ) -> dict | None:
        """Best single-step quote, or None when LI.FI has no route."""
        params = {
            "fromChain": from_chain,
            "toChain": to_chain,
            "fromToken": from_token,
            "toToken": to_token,
            "fromAmount": str(from_amount),
            "fromAddress": user_address,
            "toAddress": user_address,
            "slippage": slippage,
            "integrator": self.integrator,
        }
        logger.debug("Requesting LI.FI quote: %s", params)
        try:
            response = self.session.get(
                f"{self.base_url}/quote", params=params, headers=self.headers, timeout=self.timeout
            )
            response.raise_for_status()
            quote = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Failed to get LI.FI quote: %s", e)
            return None

        estimate = quote.get("estimate", {})
        gas_costs = estimate.get("gasCosts") or [{}]
        logger.info("LI.FI quote received: %s -> %s", from_amount, estimate.get("toAmount"))
        return {
            "fromChain": from_chain,
            "toChain": to_chain,
            "fromToken": from_token,
            "toToken": to_token,
            "fromAmount": str(from_amount),
            "toAmount": estimate.get("toAmount", "0"),
            "estimatedGas": gas_costs[0].get("amount", "0"),
            "route": quote,
        }

    def get_routes(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str,
        to_token: str,
        from_amount,
        user_address: str,
        slippage: float = config.DEFAULT_SLIPPAGE,
    ) -> list[dict]:
        """Candidate routes ordered by LI.FI's recommendation."""
        payload = {
            "fromChainId": from_chain,
            "toChainId": to_chain,
            "fromTokenAddress": from_token,
            "toTokenAddress": to_token,
            "fromAmount": str(from_amount),
            "fromAddress": user_address,
            "toAddress": user_address,
            "options": {
                "slippage": slippage,
                "order": "RECOMMENDED",
                "integrator": self.integrator,
            },
        }
        logger.debug("Requesting LI.FI routes: %s", payload)
        try:
            response = self.session.post(
                f"{self.base_url}/advanced/routes",
                json=payload,
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            routes = response.json().get("routes", [])
        except (requests.RequestException, ValueError) as e:
            logger.error("Failed to get LI.FI routes: %s", e)
            return []

        logger.info("Found %d LI.FI routes", len(routes))
        return routes

    def get_status(self, tx_hash: str, from_chain: int, to_chain: int) -> dict | None:
        try:
            response = self.session.get(
                f"{self.base_url}/status",
                params={"txHash": tx_hash, "fromChain": from_chain, "toChain": to_chain},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            status = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("Failed to check transaction status %s: %s", tx_hash, e)
            return None
        logger.debug("Transaction %s status: %s", tx_hash, status.get("status"))
        return status

    def get_lp_entry_quotes(
        self,
        from_chain: int,
        to_chain: int,
        from_token: str,
        token0: str,
        token1: str,
        amount: int,
        user_address: str,
    ) -> tuple[dict | None, dict | None]:
        """Quotes for both pool tokens, spending half of the amount on each."""
        half = int(amount) // 2
        quote0 = self.get_quote(from_chain, to_chain, from_token, token0, half, user_address)
        quote1 = self.get_quote(from_chain, to_chain, from_token, token1, half, user_address)
        return quote0, quote1

    def prepare_swap_execution(self, route: dict, journal=None) -> dict:
        """Hand back the first step's transaction request for wallet-side execution."""
        if journal is not None:
            journal.log_action(
                "LIFI_PREPARE_SWAP",
                f"Preparing LI.FI swap: {route.get('fromChainId')} -> {route.get('toChainId')}",
                inputs={
                    "fromChain": route.get("fromChainId"),
                    "toChain": route.get("toChainId"),
                    "fromToken": route.get("fromToken", {}).get("symbol"),
                    "toToken": route.get("toToken", {}).get("symbol"),
                    "fromAmount": route.get("fromAmount"),
                },
            )
        steps = route.get("steps") or [{}]
        return {"route": route, "transactionRequest": steps[0].get("transactionRequest")}
