"""
Client for the external balance authority service.
"""

import logging
import math
from decimal import Decimal, InvalidOperation
from typing import Any

import httpx

from .errors import BalanceLookupError

logger = logging.getLogger(__name__)


class BalanceLookupClient:
    """
    Fetches the authoritative balance of an address.

    Failures are surfaced to the caller; retrying is left to the request
    processor.
    """

    DEFAULT_URL = "https://server.forkedfinance.xyz"

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize the client.

        Args:
            base_url: Base URL of the balance service
            timeout: Request timeout in seconds
            transport: Optional httpx transport, mainly for tests
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.transport = transport

    async def fetch_balance(self, user_address: str) -> Any:
        """
        GET ``{base_url}/{user_address}`` and return the decoded JSON body.

        Raises:
            BalanceLookupError: On network errors, non-2xx responses or a body
                that is not JSON
        """
        url = f"{self.base_url}/{user_address}"
        logger.debug(f"Fetching balance from {url}")

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(url, timeout=self.timeout)
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            raise BalanceLookupError(
                f"Balance service returned {e.response.status_code} for {user_address}",
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise BalanceLookupError(f"Balance request for {user_address} failed: {e}") from e
        except ValueError as e:
            raise BalanceLookupError(f"Balance service returned invalid JSON for {user_address}") from e


def parse_balance(raw: Any) -> int:
    """
    Coerce a balance service response body into an unsigned integer.

    Accepts integers, integral floats or decimals, and decimal digit strings.

    Raises:
        BalanceLookupError: If the body is not a non-negative integral number
    """
    match raw:
        case bool():
            raise BalanceLookupError(f"Unexpected balance payload: {raw!r}")
        case int():
            value = raw
        case float():
            if not math.isfinite(raw) or not raw.is_integer():
                raise BalanceLookupError(f"Balance is not an integer: {raw!r}")
            value = int(raw)
        case Decimal():
            if not raw.is_finite() or raw != raw.to_integral_value():
                raise BalanceLookupError(f"Balance is not an integer: {raw!r}")
            value = int(raw)
        case str() if raw.strip():
            try:
                number = Decimal(raw.strip())
            except InvalidOperation:
                raise BalanceLookupError(f"Balance is not a number: {raw!r}") from None
            if not number.is_finite() or number != number.to_integral_value():
                raise BalanceLookupError(f"Balance is not an integer: {raw!r}")
            value = int(number)
        case _:
            raise BalanceLookupError(f"Unexpected balance payload: {raw!r}")

    if value < 0:
        raise BalanceLookupError(f"Balance must be non-negative, got {value}")
    return value
