import json
import logging
from typing import Any

import httpx

from clinic_api.core.config import Settings
from clinic_api.core.errors import ConfigurationError
from clinic_api.services.upstream import send

logger = logging.getLogger(__name__)

EVENT_DOCTYPE = "Event"
LEAD_DOCTYPE = "CRM Lead"


class FrappeClient:
    """Thin wrapper over the Frappe REST resources used for events and leads."""

    service = "Frappe CRM"

    def __init__(self, http: httpx.AsyncClient, base_url: str, api_key: str, api_secret: str) -> None:
        self.http = http
        self.base_url = base_url.rstrip("/")
        self._auth = f"token {api_key}:{api_secret}"

    @classmethod
    def from_settings(cls, http: httpx.AsyncClient, settings: Settings) -> "FrappeClient":
        if not settings.crm_configured:
            logger.error("Missing Frappe API credentials")
            raise ConfigurationError("Server configuration error")
        return cls(http, settings.frappe_crm_url, settings.frappe_api_key, settings.frappe_api_secret)

    def _headers(self, json_body: bool = True) -> dict[str, str]:
        headers = {"Authorization": self._auth, "Accept": "application/json"}
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    async def _insert(self, doctype: str, doc: dict, error_message: str) -> dict:
        result = await send(
            self.http,
            "POST",
            f"{self.base_url}/api/resource/{doctype}",
            service=self.service,
            error_message=error_message,
            headers=self._headers(),
            json=doc,
        )
        return (result or {}).get("data") or {}

    async def create_event(self, event: dict) -> dict:
        return await self._insert(EVENT_DOCTYPE, event, "Error creating appointment")

    async def create_lead(self, lead: dict) -> dict:
        return await self._insert(LEAD_DOCTYPE, lead, "Error creating lead in CRM")

    async def add_comment(self, reference_doctype: str, reference_name: str, content: str) -> dict:
        comment = {
            "doctype": "Comment",
            "comment_type": "Comment",
            "reference_doctype": reference_doctype,
            "reference_name": reference_name,
            "content": content,
        }
        return await self._insert("Comment", comment, "Error adding comment")

    async def list_events(self, filters: list[list[Any]], fields: list[str]) -> list[dict]:
        result = await send(
            self.http,
            "GET",
            f"{self.base_url}/api/resource/{EVENT_DOCTYPE}",
            service=self.service,
            error_message="Error fetching availability",
            headers=self._headers(json_body=False),
            params={
                "filters": json.dumps(filters),
                "fields": json.dumps(fields),
                "limit_page_length": 0,
            },
        )
        return (result or {}).get("data") or []

    async def upload_file(
        self,
        filename: str,
        content: bytes,
        content_type: str,
        doctype: str,
        docname: str,
        is_private: bool = True,
    ) -> dict:
        result = await send(
            self.http,
            "POST",
            f"{self.base_url}/api/method/upload_file",
            service=self.service,
            error_message="Error uploading file",
            headers=self._headers(json_body=False),
            files={"file": (filename, content, content_type)},
            data={
                "doctype": doctype,
                "docname": docname,
                "is_private": "1" if is_private else "0",
            },
        )
        return (result or {}).get("message") or {}
