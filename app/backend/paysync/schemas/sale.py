"""Cin7 sale payloads normalized at the API boundary."""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

# Cin7 exposes the payable total under different names depending on the sale stage
TOTAL_FIELDS = ("Total", "TotalBeforeTax", "GrandTotal")


def _first_total(data: dict[str, Any]) -> Decimal | None:
    for field in TOTAL_FIELDS:
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            continue
        try:
            return Decimal(str(value))
        except InvalidOperation:
            continue
    return None


def to_minor_units(total: Decimal | None) -> int:
    """Convert a major-unit total to integer minor units (150.00 -> 15000)."""
    if total is None:
        return 0
    return int((total * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class Cin7Sale(BaseModel):
    """A sale as returned by the Cin7 SaleList / Sale endpoints."""

    model_config = ConfigDict(frozen=True)

    sale_id: str
    reference: str
    status: str | None = None
    total: Decimal | None = None
    currency: str = "USD"
    customer: str | None = None
    updated: str | None = Field(default=None, description="Cin7 last-modified timestamp")

    @model_validator(mode="before")
    @classmethod
    def _from_cin7(cls, data: Any) -> Any:
        if not isinstance(data, dict) or "sale_id" in data:
            return data

        raw_id = data.get("ID") or data.get("SaleID")
        if raw_id in (None, ""):
            raise ValueError("Cin7 sale is missing ID")
        sale_id = str(raw_id)

        status = data.get("Status")
        currency = data.get("Currency") or "USD"

        return {
            "sale_id": sale_id,
            "reference": data.get("SaleOrderNumber") or data.get("OrderNumber") or f"SALE-{sale_id}",
            "status": status.strip().upper() if isinstance(status, str) and status.strip() else None,
            "total": _first_total(data),
            "currency": str(currency).strip().upper(),
            "customer": data.get("Customer"),
            "updated": data.get("Updated") or data.get("LastModifiedOn"),
        }

    @property
    def amount_minor_units(self) -> int:
        return to_minor_units(self.total)
