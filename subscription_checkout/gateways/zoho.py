"""Zoho Billing hosted-page gateway adapter."""

from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from subscription_checkout.config import settings
from subscription_checkout.gateways.base import (
    GatewayError,
    HostedPageResult,
    HostedPageStatusResult,
    PaymentGateway,
)

logger = logging.getLogger(__name__)

GATEWAY_NAME = "ZOHOBILLING"


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class ZohoBillingGateway(PaymentGateway):
    name = GATEWAY_NAME

    def __init__(
        self,
        api_base: str | None = None,
        oauth_token: str | None = None,
        organization_id: str | None = None,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ):
        self.api_base = (api_base or settings.zoho_api_base).rstrip("/")
        self.oauth_token = oauth_token if oauth_token is not None else settings.zoho_oauth_token
        self.organization_id = (
            organization_id if organization_id is not None else settings.zoho_organization_id
        )
        self.timeout = timeout if timeout is not None else settings.zoho_http_timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        if not self.oauth_token or not self.organization_id:
            raise GatewayError("Zoho Billing credentials are not configured")
        return {
            "Authorization": f"Zoho-oauthtoken {self.oauth_token}",
            "X-com-zoho-subscriptions-organizationid": self.organization_id,
            "Content-Type": "application/json;charset=UTF-8",
        }

    def _request(self, method: str, path: str, payload: dict | None = None) -> tuple[dict, str]:
        url = f"{self.api_base}{path}"
        client = self._client or httpx
        try:
            resp = client.request(
                method,
                url,
                json=payload,
                headers=self._headers(),
                timeout=self.timeout,
            )
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "zoho_request_failed method=%s path=%s status=%s body=%s",
                method,
                path,
                exc.response.status_code,
                exc.response.text[:500],
            )
            raise GatewayError(f"Zoho Billing returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("zoho_request_error method=%s path=%s error=%s", method, path, exc)
            raise GatewayError("Zoho Billing is unreachable") from exc

        raw = resp.text
        try:
            data = resp.json()
        except ValueError as exc:
            raise GatewayError("Zoho Billing returned a non-JSON response") from exc
        if not isinstance(data, dict):
            raise GatewayError("Zoho Billing returned an unexpected response")
        code = data.get("code")
        if code not in (None, 0, "0"):
            logger.error(
                "zoho_api_error method=%s path=%s code=%s message=%s",
                method,
                path,
                code,
                data.get("message"),
            )
            raise GatewayError(data.get("message") or f"Zoho Billing error code {code}")
        return data, raw

    def create_hosted_page(self, payload: dict[str, Any]) -> HostedPageResult:
        data, raw = self._request("POST", "/hostedpages/newsubscription", payload)
        page = data.get("hostedpage")
        if not isinstance(page, dict):
            page = {}
        result = HostedPageResult(
            hostedpage_id=_text(page.get("hostedpage_id")),
            decrypted_hostedpage_id=_text(page.get("decrypted_hosted_page_id")),
            status=_text(page.get("status")),
            url=_text(page.get("url")),
            expiring_time=_text(page.get("expiring_time")),
            raw_response_json=raw or json.dumps(data),
        )
        logger.info(
            "zoho_hostedpage_created hostedpage_id=%s status=%s",
            result.hostedpage_id,
            result.status,
        )
        return result

    def get_hosted_page_status(self, hostedpage_id: str) -> HostedPageStatusResult:
        data, raw = self._request("GET", f"/hostedpages/{hostedpage_id}")
        nested = data.get("data")
        page = (nested.get("hostedpage") if isinstance(nested, dict) else None) or data.get(
            "hostedpage"
        )
        if not isinstance(page, dict):
            page = {}
        return HostedPageStatusResult(
            status=_text(page.get("status")),
            url=_text(page.get("url")),
            expiring_time=_text(page.get("expiring_time")),
            raw_response_json=raw or json.dumps(data),
        )
