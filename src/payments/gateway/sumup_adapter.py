"""SumUp payment gateway adapter.

Charges are SumUp checkouts keyed by ``checkout_reference``; SumUp rejects
a second checkout with the same reference (409), in which case the
existing checkout is looked up instead of creating a new one.

The card itself is entered on SumUp's side, so a new checkout is usually
still PENDING when it comes back. That is an unknown outcome rather than a
decline: the payment stays PROCESSING and the next attempt with the same
reference picks up the checkout's settled status through the 409 lookup.
"""

import httpx
import structlog

from payments.gateway.port import ChargeResult, PaymentGateway, RefundResult
from shared.errors import ExternalDependencyError

logger = structlog.get_logger(__name__)

_PAID_STATUSES = {"PAID", "SUCCESSFUL"}
_PENDING_STATUSES = {"PENDING"}


class SumUpGateway(PaymentGateway):
    """Production gateway backed by the SumUp REST API."""

    name = "sumup"

    def __init__(
        self,
        api_key: str,
        merchant_code: str,
        base_url: str = "https://api.sumup.com/v0.1",
        timeout: float = 15.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        if not api_key or not merchant_code:
            raise ValueError("SumUp gateway requires an API key and a merchant code")

        self.merchant_code = merchant_code
        self._client = httpx.Client(
            base_url=base_url,
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def charge(self, amount: float, currency: str, reference: str) -> ChargeResult:
        payload = {
            "checkout_reference": reference,
            "amount": round(amount, 2),
            "currency": currency,
            "merchant_code": self.merchant_code,
            "description": f"Order {reference}",
        }
        response = self._request("POST", "/checkouts", json=payload)

        if response.status_code == 409:
            response = self._request("GET", "/checkouts", params={"checkout_reference": reference})
            checkouts = response.json() if response.is_success else []
            if not checkouts:
                return ChargeResult(success=False, gateway_status="UNKNOWN", failure_reason="Checkout not found")
            return self._charge_result(checkouts[0])

        if response.is_success:
            return self._charge_result(response.json())

        reason = self._error_message(response)
        logger.info("sumup_charge_declined", reference=reference, status_code=response.status_code, reason=reason)
        return ChargeResult(success=False, gateway_status=str(response.status_code), failure_reason=reason)

    def refund(self, transaction_id: str, amount: float, reference: str) -> RefundResult:
        response = self._request("POST", f"/me/refund/{transaction_id}", json={"amount": round(amount, 2)})

        if response.is_success:
            refund_id = None
            if response.content:
                refund_id = response.json().get("id")
            return RefundResult(success=True, refund_id=refund_id or transaction_id, gateway_status="REFUNDED")

        reason = self._error_message(response)
        logger.info("sumup_refund_refused", reference=reference, status_code=response.status_code, reason=reason)
        return RefundResult(success=False, gateway_status=str(response.status_code), failure_reason=reason)

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("sumup_unreachable", method=method, url=url, error=str(exc))
            raise ExternalDependencyError("Payment gateway unavailable") from exc

        if response.status_code >= 500:
            logger.error("sumup_server_error", method=method, url=url, status_code=response.status_code)
            raise ExternalDependencyError("Payment gateway unavailable")
        return response

    @staticmethod
    def _charge_result(checkout: dict) -> ChargeResult:
        status = (checkout.get("status") or "").upper()
        transactions = checkout.get("transactions") or []
        transaction_id = checkout.get("transaction_id") or (transactions[0].get("id") if transactions else None)

        if status in _PAID_STATUSES:
            return ChargeResult(
                success=True,
                transaction_id=transaction_id or checkout.get("id"),
                gateway_status=status,
            )
        if status in _PENDING_STATUSES:
            logger.info("sumup_checkout_pending", checkout_id=checkout.get("id"))
            raise ExternalDependencyError("Payment is awaiting completion at the gateway")
        return ChargeResult(success=False, gateway_status=status, failure_reason=f"Checkout {status.lower()}")

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.reason_phrase or "Payment declined"
        if isinstance(body, dict):
            return body.get("message") or body.get("error_message") or "Payment declined"
        return "Payment declined"
