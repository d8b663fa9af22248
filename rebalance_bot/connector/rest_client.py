"""
Polymarket CLOB REST access: market catalog, API key derivation and
order submission.
"""

import asyncio
import json
import time
from collections import deque
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

import aiohttp

from .auth import AccountSigner

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..exec.orders import OrderSpec
    from ..monitor import Logger


MARKETS_PATH = "/markets"
ORDER_PATH = "/order"
DERIVE_KEY_PATH = "/auth/derive-api-key"


class OrderRejected(Exception):
    """The venue accepted the request but refused the order."""


@dataclass(frozen=True)
class MarketDescriptor:
    """A binary market from the catalog."""
    market_id: str  # condition_id
    question: str
    yes_token_id: str
    no_token_id: str
    yes_price: Optional[Decimal] = None
    no_price: Optional[Decimal] = None


@dataclass(frozen=True)
class SubmitResponse:
    """Acknowledgement of a submitted order."""
    order_id: str
    status: str = ""


class WindowLimiter:
    """
    At most `limit` permits per rolling `window` seconds.

    Callers queue on a lock, so permits are granted in arrival order.
    """

    def __init__(self, limit: int, window: float):
        self.limit = limit
        self.window = window
        self._granted: deque[float] = deque()
        self._lock = asyncio.Lock()

    def _expire(self, now: float) -> None:
        while self._granted and now - self._granted[0] >= self.window:
            self._granted.popleft()

    async def acquire(self) -> None:
        async with self._lock:
            self._expire(time.monotonic())
            if len(self._granted) >= self.limit:
                wait = self.window - (time.monotonic() - self._granted[0])
                if wait > 0:
                    await asyncio.sleep(wait)
                self._granted.popleft()
            self._granted.append(time.monotonic())


def parse_markets(payload: Any) -> list[MarketDescriptor]:
    """
    Extract binary markets from a /markets response.
    Accepts both a bare list and the {"data": [...]} wrapper.
    """
    markets = payload.get("data", payload) if isinstance(payload, dict) else payload
    if not isinstance(markets, list):
        return []

    result = []
    for market in markets:
        market_id = market.get("condition_id")
        if not market_id:
            continue

        tokens = market.get("tokens") or []
        yes = next((t for t in tokens if str(t.get("outcome", "")).lower() == "yes"), None)
        no = next((t for t in tokens if str(t.get("outcome", "")).lower() == "no"), None)
        if not yes or not no or not yes.get("token_id") or not no.get("token_id"):
            continue

        result.append(MarketDescriptor(
            market_id=market_id,
            question=market.get("question", ""),
            yes_token_id=str(yes["token_id"]),
            no_token_id=str(no["token_id"]),
            yes_price=_optional_price(yes.get("price")),
            no_price=_optional_price(no.get("price")),
        ))

    return result


def _optional_price(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        price = Decimal(str(value))
    except InvalidOperation:
        return None
    # Catalog uses 0 for "no price yet"
    return price if price.is_finite() and price > 0 else None


class PolymarketRestClient:
    """
    Async CLOB client over a lazily created aiohttp session.

    Order placement and everything else draw from separate limiters, the
    same split the venue applies.
    """

    def __init__(
        self,
        signer: Optional[AccountSigner] = None,
        base_url: str = "https://clob.polymarket.com",
        timeout_seconds: int = 10,
        max_retries: int = 3,
        retry_backoff_base: float = 1.5,
        logger: Optional["Logger"] = None,
    ):
        self.signer = signer
        self.base_url = base_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.max_retries = max_retries
        self.retry_backoff_base = retry_backoff_base
        self.logger = logger
        self._session: Optional[aiohttp.ClientSession] = None
        self._limiters = {
            ORDER_PATH: WindowLimiter(350, 10),
            "*": WindowLimiter(900, 10),
        }

    def _limiter_for(self, path: str) -> WindowLimiter:
        return self._limiters.get(path.split("?")[0], self._limiters["*"])

    def _http(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _backoff(self, attempt: int) -> None:
        await asyncio.sleep(self.retry_backoff_base ** attempt)

    async def _request(
        self,
        method: str,
        path: str,
        authenticated: bool = False,
        body: Optional[dict] = None,
        retry: bool = True,
    ) -> Any:
        """
        Send one request and return the decoded JSON body.

        With retry=True, transport errors and 429 responses are retried up
        to max_retries times with exponential backoff. The last failure
        propagates as an aiohttp.ClientError.
        """
        session = self._http()
        limiter = self._limiter_for(path)
        attempts = self.max_retries if retry else 1
        payload = json.dumps(body) if body else ""

        for attempt in range(attempts):
            last_attempt = attempt == attempts - 1
            headers = {"Content-Type": "application/json"}
            if authenticated:
                headers.update(self.signer.get_l2_headers(method, path.split("?")[0], payload))

            await limiter.acquire()
            try:
                async with session.request(
                    method,
                    self.base_url + path,
                    headers=headers,
                    data=payload or None,
                ) as response:
                    if response.status != 429 or last_attempt:
                        response.raise_for_status()
                        return await response.json()
            except aiohttp.ClientError:
                if last_attempt:
                    raise

            await self._backoff(attempt)

        raise RuntimeError(f"{method} {path} gave up after {attempts} attempts")

    async def fetch_markets(self, limit: int = 200) -> list[MarketDescriptor]:
        """Fetch active binary markets with their YES/NO token ids."""
        markets = parse_markets(
            await self._request("GET", f"{MARKETS_PATH}?limit={limit}&active=true")
        )
        if self.logger:
            self.logger.info("markets_fetched", count=len(markets))
        return markets

    async def derive_api_key(self, nonce: int = 0) -> None:
        """Exchange an L1 wallet signature for L2 API credentials."""
        headers = {"Content-Type": "application/json", **self.signer.get_l1_headers(nonce)}

        async with self._http().get(self.base_url + DERIVE_KEY_PATH, headers=headers) as response:
            response.raise_for_status()
            creds = await response.json()

        self.signer.set_api_credentials(creds["apiKey"], creds["secret"], creds["passphrase"])

    async def submit_order(
        self,
        order: "OrderSpec",
        signature: str,
        order_type: str = "GTC",
    ) -> SubmitResponse:
        """
        Submit a signed order. Never retried here: a resubmission could
        double the position.
        """
        data = await self._request(
            "POST",
            ORDER_PATH,
            authenticated=True,
            body={
                "order": order.to_json(signature),
                "owner": self.signer.api_key,
                "orderType": order_type,
            },
            retry=False,
        )

        order_id = data.get("orderID") or data.get("orderId")
        if data.get("success") is False or not order_id:
            raise OrderRejected(data.get("errorMsg") or "Order rejected without id")

        return SubmitResponse(order_id=order_id, status=data.get("status", ""))


class DryRunOrderClient:
    """Accepts every order without touching the network."""

    def __init__(self, logger: Optional["Logger"] = None):
        self.logger = logger
        self.submitted: list["OrderSpec"] = []

    async def submit_order(self, order: "OrderSpec", signature: str) -> SubmitResponse:
        self.submitted.append(order)
        if self.logger:
            self.logger.info(
                "dry_run_order",
                token_id=order.token_id,
                side=order.side.name,
                price=str(order.price),
                size=str(order.size),
            )
        return SubmitResponse(
            order_id=f"dry-run-{int(time.time() * 1000)}-{len(self.submitted)}",
            status="dry_run",
        )
