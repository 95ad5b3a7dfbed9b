"""Async client for the dashboard REST API."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from . import config

logger = logging.getLogger(__name__)


class ApiError(RuntimeError):
    """Dashboard API request failed."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class Unauthorized(ApiError):
    """The API rejected the credentials (HTTP 401)."""


def _date_range(date_from: str | None, date_to: str | None) -> dict[str, Any]:
    return {"dateFrom": date_from, "dateTo": date_to}


class DashboardApiClient:
    """Thin async wrapper over the dashboard API.

    Every method returns the decoded JSON body. A bearer token is attached
    when set; a 401 response drops it and raises ``Unauthorized``.
    """

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout_s: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or config.API_URL).rstrip("/")
        self.token = token if token is not None else config.AUTH_TOKEN
        self.timeout_s = timeout_s or config.API_TIMEOUT_S
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "DashboardApiClient":
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
    ) -> Any:
        headers: dict[str, str] = {}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        if params:
            params = {k: v for k, v in params.items() if v is not None and v != ""}
        try:
            resp = await self._client.request(
                method, path, params=params or None, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            logger.error("API request %s %s failed: %s", method, path, exc)
            raise ApiError(f"API request failed: {exc}") from exc

        if resp.status_code == 401:
            self.token = None
            logger.warning("API rejected credentials for %s %s", method, path)
            raise Unauthorized("API HTTP 401: unauthorized", status=401)
        if resp.is_error:
            snippet = resp.text[:500].replace("\n", " ")
            raise ApiError(f"API HTTP {resp.status_code}: {snippet}", resp.status_code)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise ApiError(
                f"API returned invalid JSON for {path}", resp.status_code
            ) from exc

    # Leads
    async def get_leads(
        self, page: int = 1, page_size: int = 50, search: str = "", status: str = ""
    ) -> Any:
        params: dict[str, Any] = {"page": page, "pageSize": page_size}
        if search:
            params["search"] = search
        if status and status != "all":
            params["status"] = status
        return await self._request("GET", "/api/leads", params=params)

    async def create_lead(self, lead: dict[str, Any]) -> Any:
        return await self._request("POST", "/api/leads", json=lead)

    async def update_lead(self, lead_id: str, updates: dict[str, Any]) -> Any:
        return await self._request("PUT", f"/api/leads/{lead_id}", json=updates)

    async def delete_lead(self, lead_id: str) -> Any:
        return await self._request("DELETE", f"/api/leads/{lead_id}")

    # Calls
    async def make_call(
        self, phone_number: str, custom_parameters: dict[str, Any] | None = None
    ) -> Any:
        payload = {
            "phoneNumber": phone_number,
            "customParameters": custom_parameters or {},
        }
        return await self._request("POST", "/elevenlabs/make-call", json=payload)

    async def get_conversation_status(self, conversation_id: str) -> Any:
        return await self._request(
            "GET", f"/elevenlabs/conversation-status/{conversation_id}"
        )

    async def get_calls(self, page: int = 1, page_size: int = 50) -> Any:
        return await self._request(
            "GET", "/api/calls", params={"page": page, "pageSize": page_size}
        )

    async def get_active_calls(self) -> Any:
        return await self._request("GET", "/api/calls/active")

    async def get_call_metrics(
        self, date_from: str | None = None, date_to: str | None = None
    ) -> Any:
        return await self._request(
            "GET", "/api/calls/metrics", params=_date_range(date_from, date_to)
        )

    async def get_websocket_url(self, conversation_id: str) -> Any:
        return await self._request(
            "GET", f"/elevenlabs/websocket-url/{conversation_id}"
        )

    # Phone numbers
    async def get_phone_numbers(self) -> Any:
        return await self._request("GET", "/elevenlabs/phone-numbers")

    async def add_phone_number(self, phone_number: str, label: str) -> Any:
        return await self._request(
            "POST",
            "/elevenlabs/add-phone-number",
            json={"phoneNumber": phone_number, "label": label},
        )

    # Appointments
    async def get_appointments(
        self, date_from: str | None = None, date_to: str | None = None
    ) -> Any:
        return await self._request(
            "GET", "/api/appointments", params=_date_range(date_from, date_to)
        )

    async def create_appointment(self, appointment: dict[str, Any]) -> Any:
        return await self._request("POST", "/api/appointments", json=appointment)

    async def update_appointment(
        self, appointment_id: str, updates: dict[str, Any]
    ) -> Any:
        return await self._request(
            "PUT", f"/api/appointments/{appointment_id}", json=updates
        )

    async def delete_appointment(self, appointment_id: str) -> Any:
        return await self._request("DELETE", f"/api/appointments/{appointment_id}")

    # WhatsApp
    async def get_whatsapp_followups(self, page: int = 1, page_size: int = 50) -> Any:
        return await self._request(
            "GET",
            "/api/whatsapp/followups",
            params={"page": page, "pageSize": page_size},
        )

    async def create_whatsapp_followup(self, followup: dict[str, Any]) -> Any:
        return await self._request("POST", "/api/whatsapp/followups", json=followup)

    async def get_whatsapp_templates(self) -> Any:
        return await self._request("GET", "/api/whatsapp/templates")

    # Statistics
    async def get_dashboard_stats(self) -> Any:
        return await self._request("GET", "/api/statistics/dashboard")

    async def get_call_center_stats(self) -> Any:
        return await self._request("GET", "/api/statistics/call-center")

    async def get_lead_stats(self) -> Any:
        return await self._request("GET", "/api/statistics/leads")

    async def get_active_calls_with_details(self) -> Any:
        return await self._request("GET", "/api/statistics/active-calls")

    async def get_call_history(self, limit: int = 10) -> Any:
        return await self._request(
            "GET", "/api/statistics/call-history", params={"limit": limit}
        )

    # Auth
    async def login(self, email: str, password: str) -> Any:
        body = await self._request(
            "POST", "/api/auth/login", json={"email": email, "password": password}
        )
        data = body.get("data") if isinstance(body, dict) else None
        if isinstance(data, dict) and data.get("token"):
            self.token = str(data["token"])
        return body

    async def logout(self) -> Any:
        try:
            return await self._request("POST", "/api/auth/logout")
        finally:
            self.token = None

    async def get_current_user(self) -> Any:
        return await self._request("GET", "/api/auth/me")

    # Campaigns
    async def create_campaign(self, campaign: dict[str, Any]) -> Any:
        return await self._request("POST", "/api/campaigns", json=campaign)

    async def get_campaigns(self) -> Any:
        return await self._request("GET", "/api/campaigns")

    async def get_campaign(self, campaign_id: str) -> Any:
        return await self._request("GET", f"/api/campaigns/{campaign_id}")

    async def start_campaign(self, campaign_id: str) -> Any:
        return await self._request("POST", f"/api/campaigns/{campaign_id}/start")

    async def pause_campaign(self, campaign_id: str) -> Any:
        return await self._request("POST", f"/api/campaigns/{campaign_id}/pause")

    async def refresh_campaign_status(self, campaign_id: str) -> Any:
        return await self._request("POST", f"/api/campaigns/{campaign_id}/refresh")

    async def refresh_all_campaign_statuses(self) -> Any:
        return await self._request("POST", "/api/campaigns/refresh-all")

    async def get_campaign_calls(self, campaign_id: str) -> Any:
        return await self._request("GET", f"/api/campaigns/{campaign_id}/calls")

    # Analytics
    async def get_analytics(
        self, date_from: str | None = None, date_to: str | None = None
    ) -> Any:
        return await self._request(
            "GET", "/api/analytics", params=_date_range(date_from, date_to)
        )

    async def get_analytics_overview(
        self, date_from: str | None = None, date_to: str | None = None
    ) -> Any:
        return await self._request(
            "GET", "/api/analytics/overview", params=_date_range(date_from, date_to)
        )
