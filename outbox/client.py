# outbox/client.py
"""
HTTP client the terminal uses to reach the order server.
"""
import logging

import requests
from django.conf import settings

logger = logging.getLogger(__name__)

# 4xx codes that mean "try again later" rather than "this request is wrong"
RETRYABLE_CLIENT_STATUSES = {408, 425, 429}


class ServerUnavailable(Exception):
    """Network error, timeout or 5xx: the write was not confirmed."""

    def __init__(self, message, status_code=None):
        self.status_code = status_code
        super().__init__(message)


class OrderRejected(Exception):
    """The server refused the order (4xx). Retrying the same body will not help."""

    def __init__(self, status_code, detail="", code=""):
        self.status_code = status_code
        self.detail = detail
        self.code = code
        super().__init__(f"HTTP {status_code}: {detail or code or 'rejected'}")


class OrderServerClient:
    health_path = "/api/v1/health/"
    orders_path = "/api/v1/orders/"
    card_lookup_path = "/api/v1/loyalty/cards/lookup"

    def __init__(self, base_url=None, token=None, tenant_code=None, timeout=None, session=None):
        self.base_url = (base_url or getattr(settings, "OUTBOX_SERVER_URL", "")).rstrip("/")
        self.token = token if token is not None else getattr(settings, "OUTBOX_API_TOKEN", "")
        self.tenant_code = tenant_code if tenant_code is not None else getattr(settings, "OUTBOX_TENANT_CODE", "")
        self.timeout = timeout or getattr(settings, "OUTBOX_HTTP_TIMEOUT", 10)
        self.session = session or requests.Session()

    def _headers(self, idempotency_key=None):
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "Coffee-POS-Outbox/1.0",
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if self.tenant_code:
            headers["X-Tenant-Code"] = self.tenant_code
        if idempotency_key:
            headers["Idempotency-Key"] = idempotency_key
        return headers

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            return self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as exc:
            raise ServerUnavailable(f"{method} {path} failed: {exc}") from exc

    @staticmethod
    def _error_body(response):
        try:
            body = response.json()
        except ValueError:
            return response.text[:500], ""
        if isinstance(body, dict):
            return str(body.get("detail") or body)[:500], str(body.get("code") or "")
        return str(body)[:500], ""

    @staticmethod
    def _json_body(response):
        # a 2xx we cannot read is treated as unconfirmed; the replay resolves it
        try:
            return response.json()
        except ValueError as exc:
            raise ServerUnavailable(
                f"Unreadable response body (HTTP {response.status_code})", status_code=response.status_code
            ) from exc

    def is_online(self) -> bool:
        try:
            response = self._request("GET", self.health_path, headers=self._headers())
        except ServerUnavailable as exc:
            logger.debug("Health probe failed: %s", exc)
            return False
        return response.status_code == 200

    def create_order(self, payload: dict, idempotency_key: str) -> dict:
        """
        POST the order. Returns the server's order body (201 created or 200
        replay). Raises ServerUnavailable or OrderRejected.
        """
        response = self._request(
            "POST", self.orders_path, json=payload, headers=self._headers(idempotency_key)
        )
        status = response.status_code
        if 200 <= status < 300:
            return self._json_body(response)
        detail, code = self._error_body(response)
        if status >= 500 or status in RETRYABLE_CLIENT_STATUSES:
            raise ServerUnavailable(f"HTTP {status}: {detail}", status_code=status)
        raise OrderRejected(status, detail=detail, code=code)

    def lookup_card(self, phone=None, card_number=None, qr_token=None) -> dict | None:
        params = {k: v for k, v in (("phone", phone), ("card_number", card_number), ("qr_token", qr_token)) if v}
        response = self._request("GET", self.card_lookup_path, params=params, headers=self._headers())
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise ServerUnavailable(f"Card lookup returned HTTP {response.status_code}", status_code=response.status_code)
        return self._json_body(response)
