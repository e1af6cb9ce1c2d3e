"""
Sweep&GO open API client.

Two onboarding endpoints are used: the out-of-service form (a lead with no
payment) and client-with-package registration (a paying client). Errors
surface as CrmError with the upstream status code.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from scooops.config import CrmConfig
from scooops.errors import ConfigurationError, CrmError

logger = logging.getLogger(__name__)

LEAD_PATH = "/api/v2/client_on_boarding/out_of_service_form"
REGISTRATION_PATH = "/api/v2/client_on_boarding/create_client_with_package"


def _error_message(response: httpx.Response) -> str:
    text = response.text.strip()
    try:
        body = response.json()
    except ValueError:
        return text
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or text)
    return text


def _json_object(response: httpx.Response) -> Optional[dict[str, Any]]:
    try:
        body = response.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


class SweepAndGoClient:
    """Async client for the CRM onboarding endpoints."""

    def __init__(
        self,
        config: CrmConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._config.api_key)

    async def _post(self, path: str, payload: dict[str, Any]) -> httpx.Response:
        if not self._config.api_key:
            raise ConfigurationError("SWEEP_AND_GO_API_KEY is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self._config.api_base,
                timeout=self._config.timeout_sec,
                transport=self._transport,
            ) as client:
                resp = await client.post(
                    path,
                    json=payload,
                    headers={"Authorization": f"Bearer {self._config.api_key}"},
                )
        except httpx.TimeoutException:
            logger.warning("Sweep&GO %s timed out", path)
            raise CrmError("The scheduling system did not respond in time.", 504) from None
        except httpx.HTTPError as exc:
            logger.warning("Sweep&GO %s transport error: %s", path, exc)
            raise CrmError("Could not reach the scheduling system.", 502) from None

        if resp.status_code >= 400:
            message = _error_message(resp)
            logger.error("Sweep&GO %s failed (%s): %s", path, resp.status_code, message)
            raise CrmError(message, resp.status_code)
        return resp

    async def create_lead(
        self,
        name: str,
        email: str,
        phone: str,
        address: str = "",
        city: str = "",
        state: str = "",
        zip_code: str = "",
        comment: str = "",
    ) -> dict[str, Any]:
        """Submit an inquiry without payment details."""
        payload = {
            "organization": self._config.org_slug,
            "name": name,
            "address": address,
            "city": city,
            "state": state,
            "email_address": email,
            "phone": phone,
            "zip_code": zip_code,
            "comment": comment,
            "marketing_allowed": 1,
            "marketing_allowed_source": "open_api",
        }
        resp = await self._post(LEAD_PATH, payload)
        logger.info("Sweep&GO lead submitted")
        result = _json_object(resp)
        return result if result is not None else {"raw": resp.text}

    async def create_client_with_package(
        self,
        first_name: str,
        last_name: str,
        email: str,
        phone: str,
        address: str,
        city: str,
        state: str,
        zip_code: str,
        clean_up_frequency: str,
        credit_card_token: str,
        package_id: Optional[str] = None,
        package_name: str = "Standard Plan",
        comment: str = "",
    ) -> tuple[str, dict[str, Any]]:
        """Register a paying client. Returns (client_id, raw response)."""
        payload: dict[str, Any] = {
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "cell_phone_number": phone,
            "home_address": address,
            "city": city,
            "state": state,
            "zip_code": zip_code,
            "cross_sell_name": package_name,
            "clean_up_frequency": clean_up_frequency,
            "category": "cleanup",
            "billing_interval": "monthly",
            "credit_card_token": credit_card_token,
            "marketing_allowed": 1,
            "terms_open_api": True,
            "organization": self._config.org_slug,
            "marketing_allowed_source": "open_api",
            "comment": comment,
        }
        if package_id:
            payload["cross_sell_id"] = f"pkg_{package_id}"

        resp = await self._post(REGISTRATION_PATH, payload)
        result = _json_object(resp)
        if result is None:
            logger.error("Sweep&GO %s returned an unreadable body: %.200s", REGISTRATION_PATH, resp.text)
            raise CrmError("The scheduling system returned an unexpected response.", 502)
        client_id = result.get("client_id") or result.get("id")
        if not client_id and isinstance(result.get("data"), dict):
            client_id = result["data"].get("client_id") or result["data"].get("id")
        logger.info("Sweep&GO client registered: %s", client_id)
        return (str(client_id) if client_id else "", result)
