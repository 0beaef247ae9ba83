"""
ServiceM8 REST API client.

Covers the endpoints the dashboard needs: active jobs, bulk lookups
(job contacts, companies, company contacts, custom fields, feed items,
notes), per-job activity/notes for the history view, and outbound SMS and
email through the platform messaging endpoints.

Jobs must load for a sync to succeed, so fetch_jobs raises. Bulk lookups are
enrichment only and degrade to empty results on failure.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from config import settings
from ..services.lifecycle import extract_custom_fields

logger = logging.getLogger(__name__)


class ServiceM8Error(Exception):
    """ServiceM8 request failed."""
    pass


class ServiceM8AuthError(ServiceM8Error):
    """Token missing, expired or rejected (HTTP 401)."""
    pass


class ServiceM8NotConfigured(ServiceM8Error):
    """Neither an API key nor an OAuth connection is available."""
    pass


class ServiceM8Client:
    """Async client for the ServiceM8 API. Use as an async context manager."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        access_token: Optional[str] = None,
        base_url: Optional[str] = None,
        platform_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not api_key and not access_token:
            raise ServiceM8NotConfigured("ServiceM8 API key or OAuth token required")

        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        else:
            headers["X-API-Key"] = api_key

        self.base_url = (base_url or settings.servicem8_api_base_url).rstrip("/")
        self.platform_url = (platform_url or settings.servicem8_platform_url).rstrip("/")
        self.uses_oauth = bool(access_token)
        self._client = httpx.AsyncClient(
            headers=headers,
            timeout=timeout if timeout is not None else settings.http_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> "ServiceM8Client":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    # ==================== TRANSPORT ====================

    def _check(self, response: httpx.Response, what: str) -> None:
        if response.status_code == 401:
            raise ServiceM8AuthError("ServiceM8 rejected the credentials; reconnect required")
        if response.status_code >= 400:
            logger.error(f"ServiceM8 {what} failed: {response.status_code} {response.text[:500]}")
            raise ServiceM8Error(f"ServiceM8 API error: {response.status_code}")

    async def _get(self, resource: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """GET {base}/{resource}.json, raising ServiceM8Error on any failure."""
        try:
            response = await self._client.get(f"{self.base_url}/{resource}.json", params=params)
        except httpx.HTTPError as e:
            logger.error(f"ServiceM8 {resource} request failed: {e}")
            raise ServiceM8Error(f"ServiceM8 unreachable: {e}") from e
        self._check(response, resource)
        return response.json()

    async def _get_list_or_empty(self, resource: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Lookup GET that logs and returns [] on failure (auth errors still raise)."""
        try:
            data = await self._get(resource, params)
        except ServiceM8AuthError:
            raise
        except ServiceM8Error as e:
            logger.warning(f"ServiceM8 lookup {resource} unavailable: {e}")
            return []
        return data if isinstance(data, list) else []

    # ==================== JOBS ====================

    async def fetch_jobs(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        """Active jobs. Raises ServiceM8Error on failure."""
        data = await self._get("job", {
            "$filter": "active eq 1",
            "$top": limit or settings.servicem8_job_page_size,
        })
        jobs = data if isinstance(data, list) else []
        logger.info(f"Fetched {len(jobs)} active jobs from ServiceM8")
        return jobs

    async def fetch_job_custom_fields(self, limit: Optional[int] = None) -> Dict[str, Dict[str, Any]]:
        """job UUID -> {field name: value}, from jobs fetched with custom field expansion."""
        jobs = await self._get_list_or_empty("job", {
            "$filter": "active eq 1",
            "$top": limit or settings.servicem8_job_page_size,
            "$expand": "customfield_values",
        })
        result = {}
        for job in jobs:
            if not job.get("uuid"):
                continue
            values = extract_custom_fields(job)
            if values:
                result[job["uuid"]] = values
        logger.debug(f"Mapped custom fields for {len(result)} jobs")
        return result

    # ==================== CONTACTS / COMPANIES ====================

    async def fetch_all_job_contacts(self) -> Dict[str, Dict[str, str]]:
        """job UUID -> {first, last} for contacts with a name."""
        contacts = await self._get_list_or_empty("jobcontact", {"$top": settings.servicem8_lookup_page_size})
        result = {}
        for contact in contacts:
            if contact.get("job_uuid") and (contact.get("first") or contact.get("last")):
                result[contact["job_uuid"]] = {
                    "first": contact.get("first") or "",
                    "last": contact.get("last") or "",
                }
        return result

    async def fetch_job_contact(self, job_uuid: str) -> Optional[Dict[str, Any]]:
        """First contact for a job, or None."""
        contacts = await self._get_list_or_empty(
            "jobcontact", {"$filter": f"job_uuid eq '{job_uuid}'"}
        )
        if not contacts:
            return None
        contact = contacts[0]
        return {
            "first": contact.get("first") or "",
            "last": contact.get("last") or "",
            "phone": contact.get("phone"),
            "mobile": contact.get("mobile"),
            "email": contact.get("email"),
        }

    async def fetch_all_companies(self) -> Dict[str, str]:
        """company UUID -> name."""
        companies = await self._get_list_or_empty("company", {"$top": settings.servicem8_lookup_page_size})
        result = {}
        for company in companies:
            name = company.get("name") or company.get("company_name")
            if company.get("uuid") and name:
                result[company["uuid"]] = name
        return result

    async def fetch_all_companies_full(self) -> Dict[str, Dict[str, str]]:
        """company UUID -> {uuid, name, email, phone, mobile}."""
        companies = await self._get_list_or_empty("company", {"$top": settings.servicem8_lookup_page_size})
        return {
            c["uuid"]: {
                "uuid": c["uuid"],
                "name": c.get("name") or c.get("company_name") or "Unknown",
                "email": c.get("email") or "",
                "phone": c.get("phone") or "",
                "mobile": c.get("mobile") or "",
            }
            for c in companies
            if c.get("uuid")
        }

    async def fetch_all_company_contacts(self) -> Dict[str, List[Dict[str, Any]]]:
        """company UUID -> list of contacts."""
        contacts = await self._get_list_or_empty("companycontact", {"$top": settings.servicem8_lookup_page_size})
        result: Dict[str, List[Dict[str, Any]]] = {}
        for c in contacts:
            if not c.get("company_uuid"):
                continue
            name = " ".join(p for p in (c.get("first"), c.get("last")) if p) or "Unknown"
            result.setdefault(c["company_uuid"], []).append({
                "uuid": c.get("uuid") or "",
                "name": name,
                "email": c.get("email") or "",
                "mobile": c.get("mobile") or "",
                "phone": c.get("phone") or "",
                "is_primary": c.get("is_primary") in (1, True, "1"),
            })
        return result

    # ==================== COMMUNICATIONS ====================

    async def fetch_feed_items(self) -> List[Dict[str, Any]]:
        """Recent activity feed items, newest first."""
        return await self._get_list_or_empty("feeditem", {
            "$top": settings.servicem8_lookup_page_size,
            "$orderby": "timestamp desc",
        })

    async def fetch_notes(self) -> List[Dict[str, Any]]:
        """Recent notes across all jobs, newest first."""
        return await self._get_list_or_empty("note", {
            "$top": settings.servicem8_lookup_page_size,
            "$orderby": "timestamp desc",
        })

    async def fetch_job_activities(self, job_uuid: str) -> List[Dict[str, Any]]:
        return await self._get_list_or_empty(
            "jobactivity", {"$filter": f"job_uuid eq '{job_uuid}'"}
        )

    async def fetch_job_notes(self, job_uuid: str) -> List[Dict[str, Any]]:
        return await self._get_list_or_empty(
            "note", {"$filter": f"related_object eq 'job' and related_object_uuid eq '{job_uuid}'"}
        )

    # ==================== MESSAGING ====================

    async def _post_platform(self, channel: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(f"{self.platform_url}_{channel}", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"ServiceM8 {channel} send failed: {e}")
            raise ServiceM8Error(f"ServiceM8 unreachable: {e}") from e
        self._check(response, f"{channel} send")
        try:
            return response.json()
        except ValueError:
            return {}

    async def send_sms(self, to: str, message: str, job_uuid: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"to": to, "message": message}
        if job_uuid:
            payload["regardingJobUUID"] = job_uuid
        result = await self._post_platform("sms", payload)
        logger.info(f"Sent SMS via ServiceM8 (job {job_uuid or '-'})")
        return result

    async def send_email(
        self, to: str, subject: str, body: str, job_uuid: Optional[str] = None
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"to": to, "subject": subject, "textBody": body}
        if job_uuid:
            payload["regardingJobUUID"] = job_uuid
        result = await self._post_platform("email", payload)
        logger.info(f"Sent email via ServiceM8 (job {job_uuid or '-'})")
        return result


async def create_servicem8_client(prefer_oauth: bool = False) -> ServiceM8Client:
    """
    Build a client from stored credentials.

    With prefer_oauth the stored OAuth token is used first (needed for
    messaging and notes), falling back to the API key. Without it the API key
    is used first. Raises ServiceM8NotConfigured if neither is available.
    """
    from ..services.oauth import get_oauth_service

    api_key = settings.servicem8_api_key
    if api_key and not prefer_oauth:
        return ServiceM8Client(api_key=api_key)

    access_token = await get_oauth_service().get_valid_access_token()
    if access_token:
        return ServiceM8Client(access_token=access_token)
    if api_key:
        return ServiceM8Client(api_key=api_key)
    raise ServiceM8NotConfigured(
        "ServiceM8 not configured. Set SERVICEM8_API_KEY or connect via OAuth."
    )
