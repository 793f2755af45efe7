"""Cin7 Core (DEAR) API v2 client for reading sales and posting payments."""

import logging
from datetime import date, datetime
from decimal import Decimal
from time import perf_counter
from typing import Any

import httpx
from pydantic import ValidationError as PydanticValidationError

from paysync.core.config import Settings
from paysync.core.exceptions import Cin7APIError
from paysync.core.metrics import MetricsCollector
from paysync.schemas.sale import Cin7Sale

logger = logging.getLogger(__name__)


class Cin7Service:
    """Service for the Cin7 Core external API."""

    MAX_RETRIES = 2
    # Only safe-to-repeat requests are retried on transport errors
    RETRYABLE_METHODS = frozenset({"GET", "PUT"})

    def __init__(
        self,
        base_url: str,
        account_id: str | None,
        api_key: str | None,
        metrics: MetricsCollector,
        timeout: float = 30.0,
        payment_account: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize Cin7 service.

        Args:
            base_url: API root, e.g. https://inventory.dearsystems.com/ExternalApi/v2
            account_id: Value for the api-auth-accountid header
            api_key: Value for the api-auth-applicationkey header
            metrics: Collector for call counts and timings
            timeout: Per-request timeout in seconds
            payment_account: Ledger account code payments are booked against
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        self.account_id = account_id
        self.api_key = api_key
        self.metrics = metrics
        self.timeout = timeout
        self.payment_account = payment_account
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings, metrics: MetricsCollector) -> "Cin7Service":
        return cls(
            base_url=settings.CIN7_BASE_URL,
            account_id=settings.CIN7_ACCOUNT_ID,
            api_key=settings.CIN7_API_KEY.get_secret_value() if settings.CIN7_API_KEY else None,
            metrics=metrics,
            timeout=settings.CIN7_TIMEOUT_SECONDS,
            payment_account=settings.CIN7_PAYMENT_ACCOUNT,
        )

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _get_headers(self) -> dict[str, str]:
        return {
            "Content-Type": "application/json",
            "api-auth-accountid": self.account_id or "",
            "api-auth-applicationkey": self.api_key or "",
        }

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
        retries: int = 0,
    ) -> Any:
        """
        Send a request to Cin7 and return the decoded JSON body.

        An empty success body decodes to {} and a non-JSON one to {"raw": text}.

        Raises:
            Cin7APIError: On non-2xx responses or after exhausting retries
        """
        if not self.configured:
            raise Cin7APIError("Cin7 API key is not configured")

        url = f"{self.base_url}/{path.lstrip('/')}"
        self.metrics.increment("cin7_api_calls")
        start = perf_counter()

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=self.timeout) as client:
                response = await client.request(
                    method, url, headers=self._get_headers(), params=params, json=json
                )
        except httpx.TransportError as e:
            self.metrics.increment("cin7_api_errors")
            logger.error(f"Error calling Cin7 {method} {path}: {str(e)}")

            if method in self.RETRYABLE_METHODS and retries < self.MAX_RETRIES:
                logger.info(f"Retrying... (attempt {retries + 1}/{self.MAX_RETRIES})")
                return await self._request(method, path, params=params, json=json, retries=retries + 1)

            raise Cin7APIError(f"Cin7 {method} {path} failed after {retries + 1} attempt(s): {e}") from e
        finally:
            self.metrics.record_time("cin7", (perf_counter() - start) * 1000)

        if response.is_success:
            if not response.content.strip():
                return {}
            try:
                return response.json()
            except ValueError:
                logger.warning(f"Cin7 {method} {path} returned a non-JSON body: {response.text[:200]}")
                return {"raw": response.text}

        self.metrics.increment("cin7_api_errors")
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text
        logger.error(f"Cin7 API error: {response.status_code} {method} {path} - {body}")
        raise Cin7APIError(
            f"Cin7 {method} {path} returned {response.status_code}",
            status_code=response.status_code,
            response_body=body,
        )

    async def get_sales(
        self,
        updated_since: date | datetime,
        limit: int = 100,
        page: int = 1,
        status: str | None = None,
    ) -> list[Cin7Sale]:
        """
        List sales modified since a date.

        Entries that cannot be normalized are logged and dropped.

        Args:
            updated_since: Lower bound on the sale's modification date
            limit: Page size
            page: 1-based page number
            status: Optional Cin7 status filter

        Returns:
            Normalized sales
        """
        params: dict[str, Any] = {
            "Page": page,
            "Limit": limit,
            "UpdatedSince": updated_since.isoformat(),
        }
        if status:
            params["Status"] = status

        logger.info(f"Fetching sales from Cin7: params={params}")
        data = await self._request("GET", "saleList", params=params)

        raw_sales = data.get("SaleList", []) if isinstance(data, dict) else data or []
        sales: list[Cin7Sale] = []
        for raw in raw_sales:
            try:
                sales.append(Cin7Sale.model_validate(raw))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed Cin7 sale: {e.errors()}")
        return sales

    async def get_sale(self, sale_id: str) -> Cin7Sale:
        """Fetch a single sale by id."""
        logger.info(f"Fetching sale by ID: {sale_id}")
        data = await self._request("GET", "sale", params={"ID": sale_id})
        return Cin7Sale.model_validate(data)

    async def update_sale_note(self, sale_id: str, note: str) -> dict[str, Any]:
        """Overwrite the sale's Note field."""
        logger.info(f"Updating note on Cin7 sale {sale_id}")
        return await self._request("PUT", "sale", json={"ID": sale_id, "Note": note})

    async def post_payment(
        self,
        sale_id: str,
        amount: Decimal,
        currency: str,
        reference: str,
        notes: str | None = None,
        paid_on: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Record a received payment against a sale.

        Args:
            sale_id: Cin7 sale id
            amount: Amount in major units
            currency: ISO currency code
            reference: Non-sensitive transaction reference (Stripe id)
            notes: Free-text note stored with the payment
            paid_on: Payment date (defaults to now)

        Returns:
            Decoded Cin7 response
        """
        payload: dict[str, Any] = {
            "SaleID": sale_id,
            "Type": "Payment",
            "Amount": float(amount),
            "Currency": currency.upper(),
            "DatePaid": (paid_on or datetime.now()).date().isoformat(),
            "Reference": reference,
        }
        if notes:
            payload["Notes"] = notes
        if self.payment_account:
            payload["Account"] = self.payment_account

        logger.info(f"Posting payment to Cin7: sale_id={sale_id} amount={amount} reference={reference}")
        return await self._request("POST", "sale/payment", json=payload)
