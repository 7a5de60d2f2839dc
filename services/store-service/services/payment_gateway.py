"""Chapa payment gateway client."""
import httpx
import logging
import time
from typing import Any, Dict
from opentelemetry import trace

from config import CHAPA_BASE_URL, CHAPA_SECRET_KEY
from errors import AppError
from monitoring import payment_gateway_duration_histogram

logger = logging.getLogger(__name__)


class ChapaClient:
    """Thin async client for the Chapa REST API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        base_url: str = CHAPA_BASE_URL,
        secret_key: str = CHAPA_SECRET_KEY
    ):
        """
        Initialize the gateway client.

        Args:
            http_client: Shared async HTTP client
            base_url: Chapa API root, e.g. https://api.chapa.co/v1
            secret_key: Chapa secret key sent as a bearer token
        """
        self.http_client = http_client
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.secret_key}"}

    async def _request(self, operation: str, method: str, path: str, **kwargs) -> Dict[str, Any]:
        """
        Call the gateway and return its JSON body.

        Raises:
            AppError: With the gateway's status and message on an HTTP error,
                or 502 when the gateway cannot be reached
        """
        # HTTPXClientInstrumentor already creates spans for HTTP calls
        span = trace.get_current_span()
        span.set_attribute("payment.gateway", "chapa")
        span.set_attribute("payment.operation", operation)

        start_time = time.time()
        status = "success"
        status_code = None
        try:
            response = await self.http_client.request(
                method,
                f"{self.base_url}{path}",
                headers=self._headers,
                **kwargs
            )
            status_code = response.status_code
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            status = "error"
            message = f"Payment {operation} failed"
            try:
                message = e.response.json().get("message") or message
            except ValueError:
                pass
            if not isinstance(message, str):
                message = str(message)
            logger.warning("Payment gateway returned error status", extra={
                "operation": operation,
                "status_code": e.response.status_code,
                "gateway_message": message
            })
            raise AppError(message, e.response.status_code) from e
        except httpx.RequestError as e:
            status = "error"
            status_code = 0
            logger.error("Payment gateway unreachable", extra={
                "operation": operation,
                "error": str(e)
            })
            raise AppError("Payment gateway unavailable", 502) from e
        finally:
            payment_gateway_duration_histogram.record(
                time.time() - start_time,
                {
                    "operation": operation,
                    "status": status,
                    "status_code": str(status_code) if status_code else "0"
                }
            )

    async def initialize(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST /transaction/initialize. The response carries data.checkout_url."""
        return await self._request("initialize", "POST", "/transaction/initialize", json=payload)

    async def verify(self, tx_ref: str) -> Dict[str, Any]:
        """GET /transaction/verify/<tx_ref>."""
        return await self._request("verify", "GET", f"/transaction/verify/{tx_ref}")

    async def check_availability(self) -> Dict[str, Any]:
        """
        Probe the gateway with GET /banks.

        Returns:
            {"available": bool, "status_code": int}; never raises
        """
        try:
            await self._request("availability", "GET", "/banks")
            return {"available": True, "status_code": 200}
        except AppError as e:
            logger.warning("Payment gateway availability check failed", extra={
                "status_code": e.status_code,
                "error": e.message
            })
            return {"available": False, "status_code": e.status_code}
