"""Fake Cin7 Core API served through httpx.MockTransport."""

import json
from typing import Any

import httpx
import pytest

from paysync.core.metrics import MetricsCollector
from paysync.services.cin7.cin7_service import Cin7Service

CIN7_BASE_URL = "https://cin7.test/ExternalApi/v2"


class FakeCin7:
    """Records requests and answers the endpoints Cin7Service uses."""

    def __init__(self) -> None:
        self.sales: list[dict[str, Any]] = []
        self.requests: list[httpx.Request] = []
        self.fail_payments = False
        self.fail_notes = False
        # Answer writes with a bare "OK" body, as some Cin7 endpoints do
        self.text_replies = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.rsplit("/ExternalApi/v2/", 1)[-1]

        if request.method == "GET" and path == "saleList":
            return httpx.Response(200, json={"Total": len(self.sales), "SaleList": self.sales})

        if request.method == "GET" and path == "sale":
            sale_id = request.url.params.get("ID")
            for sale in self.sales:
                if str(sale.get("ID")) == sale_id:
                    return httpx.Response(200, json=sale)
            return httpx.Response(404, json={"Exception": "Sale not found"})

        if request.method == "PUT" and path == "sale":
            if self.fail_notes:
                return httpx.Response(500, json={"Exception": "Note update failed"})
            if self.text_replies:
                return httpx.Response(200, text="OK")
            return httpx.Response(200, json=json.loads(request.content))

        if request.method == "POST" and path == "sale/payment":
            if self.fail_payments:
                return httpx.Response(503, json={"Exception": "Service unavailable"})
            if self.text_replies:
                return httpx.Response(200, text="OK")
            body = json.loads(request.content)
            return httpx.Response(200, json={"ID": f"payment-{len(self.payment_calls())}", **body})

        return httpx.Response(404, json={"Exception": f"Unknown endpoint {path}"})

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == method and r.url.path.endswith(f"/ExternalApi/v2/{path}")
        ]

    def payment_calls(self) -> list[httpx.Request]:
        return self.calls("POST", "sale/payment")

    def note_calls(self) -> list[httpx.Request]:
        return self.calls("PUT", "sale")


@pytest.fixture
def fake_cin7() -> FakeCin7:
    return FakeCin7()


@pytest.fixture
def cin7_service(fake_cin7: FakeCin7, metrics: MetricsCollector) -> Cin7Service:
    """Configured Cin7Service talking to FakeCin7."""
    return Cin7Service(
        base_url=CIN7_BASE_URL,
        account_id="test-account",
        api_key="test-cin7-key",
        metrics=metrics,
        timeout=5.0,
        transport=httpx.MockTransport(fake_cin7.handler),
    )


@pytest.fixture
def unconfigured_cin7_service(fake_cin7: FakeCin7, metrics: MetricsCollector) -> Cin7Service:
    return Cin7Service(
        base_url=CIN7_BASE_URL,
        account_id=None,
        api_key=None,
        metrics=metrics,
        transport=httpx.MockTransport(fake_cin7.handler),
    )
