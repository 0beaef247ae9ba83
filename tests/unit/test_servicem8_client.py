"""
Unit tests for the ServiceM8 API client, using httpx.MockTransport.
"""

import json
import pytest
import httpx
from unittest.mock import AsyncMock, patch

from command_center.integrations.servicem8 import (
    ServiceM8AuthError,
    ServiceM8Client,
    ServiceM8Error,
    ServiceM8NotConfigured,
    create_servicem8_client,
)

BASE = "https://sm8.test/api_1.0"
PLATFORM = "https://sm8.test/platform_service"


def make_client(handler, **kwargs):
    kwargs.setdefault("api_key", "key-123")
    return ServiceM8Client(base_url=BASE, platform_url=PLATFORM, transport=httpx.MockTransport(handler), **kwargs)


def routes(table):
    """Handler answering by URL path; unknown paths give 404."""
    def handler(request: httpx.Request) -> httpx.Response:
        body = table.get(request.url.path)
        if body is None:
            return httpx.Response(404, json={"error": "not found"})
        if isinstance(body, httpx.Response):
            return body
        return httpx.Response(200, json=body)
    return handler


class TestConstruction:

    def test_requires_credentials(self):
        with pytest.raises(ServiceM8NotConfigured):
            ServiceM8Client()

    @pytest.mark.asyncio
    async def test_api_key_header(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json=[])

        async with make_client(handler) as client:
            await client.fetch_jobs()
        assert seen["x-api-key"] == "key-123"
        assert "authorization" not in seen

    @pytest.mark.asyncio
    async def test_bearer_header(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, json=[])

        async with make_client(handler, api_key=None, access_token="tok") as client:
            assert client.uses_oauth is True
            await client.fetch_jobs()
        assert seen["authorization"] == "Bearer tok"


class TestJobs:

    @pytest.mark.asyncio
    async def test_fetch_jobs_filters_active(self):
        captured = {}

        def handler(request):
            captured["params"] = dict(request.url.params)
            return httpx.Response(200, json=[{"uuid": "a"}, {"uuid": "b"}])

        async with make_client(handler) as client:
            jobs = await client.fetch_jobs(limit=50)

        assert [j["uuid"] for j in jobs] == ["a", "b"]
        assert captured["params"]["$filter"] == "active eq 1"
        assert captured["params"]["$top"] == "50"

    @pytest.mark.asyncio
    async def test_fetch_jobs_raises_on_error(self):
        async with make_client(lambda r: httpx.Response(500, text="oops")) as client:
            with pytest.raises(ServiceM8Error):
                await client.fetch_jobs()

    @pytest.mark.asyncio
    async def test_unauthorized_raises_auth_error(self):
        async with make_client(lambda r: httpx.Response(401)) as client:
            with pytest.raises(ServiceM8AuthError):
                await client.fetch_jobs()

    @pytest.mark.asyncio
    async def test_network_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        async with make_client(handler) as client:
            with pytest.raises(ServiceM8Error):
                await client.fetch_jobs()

    @pytest.mark.asyncio
    async def test_custom_fields(self):
        jobs = [
            {"uuid": "a", "customfield_values": [{"field_name": "Staff Assigned", "value": "Wayne"}]},
            {"uuid": "b", "customfield_values": []},
        ]
        async with make_client(routes({"/api_1.0/job.json": jobs})) as client:
            fields = await client.fetch_job_custom_fields()
        assert fields == {"a": {"Staff Assigned": "Wayne"}}


class TestLookups:

    @pytest.mark.asyncio
    async def test_job_contacts_keyed_by_job(self):
        contacts = [
            {"job_uuid": "a", "first": "Jane", "last": "Citizen"},
            {"job_uuid": "b", "first": "", "last": ""},
            {"first": "No", "last": "Job"},
        ]
        async with make_client(routes({"/api_1.0/jobcontact.json": contacts})) as client:
            result = await client.fetch_all_job_contacts()
        assert result == {"a": {"first": "Jane", "last": "Citizen"}}

    @pytest.mark.asyncio
    async def test_companies(self):
        companies = [{"uuid": "c1", "name": "Acme"}, {"uuid": "c2", "company_name": "Beta"}, {"uuid": "c3"}]
        async with make_client(routes({"/api_1.0/company.json": companies})) as client:
            assert await client.fetch_all_companies() == {"c1": "Acme", "c2": "Beta"}

    @pytest.mark.asyncio
    async def test_companies_full(self):
        companies = [
            {"uuid": "c1", "name": "Acme", "email": "office@acme.test", "phone": "9300 0000"},
            {"uuid": "c2"},
            {"name": "No uuid"},
        ]
        async with make_client(routes({"/api_1.0/company.json": companies})) as client:
            result = await client.fetch_all_companies_full()

        assert set(result) == {"c1", "c2"}
        assert result["c1"]["email"] == "office@acme.test"
        assert result["c1"]["mobile"] == ""
        assert result["c2"]["name"] == "Unknown"

    @pytest.mark.asyncio
    async def test_lookup_failure_degrades_to_empty(self):
        async with make_client(lambda r: httpx.Response(503)) as client:
            assert await client.fetch_all_companies() == {}
            assert await client.fetch_feed_items() == []

    @pytest.mark.asyncio
    async def test_lookup_auth_error_still_raises(self):
        async with make_client(lambda r: httpx.Response(401)) as client:
            with pytest.raises(ServiceM8AuthError):
                await client.fetch_notes()

    @pytest.mark.asyncio
    async def test_company_contacts_grouped(self):
        contacts = [
            {"uuid": "p1", "company_uuid": "c1", "first": "Ann", "last": "Lee", "is_primary": "1"},
            {"uuid": "p2", "company_uuid": "c1", "first": "Bob"},
        ]
        async with make_client(routes({"/api_1.0/companycontact.json": contacts})) as client:
            result = await client.fetch_all_company_contacts()
        assert [c["name"] for c in result["c1"]] == ["Ann Lee", "Bob"]
        assert result["c1"][0]["is_primary"] is True

    @pytest.mark.asyncio
    async def test_job_contact(self):
        contacts = [{"job_uuid": "a", "first": "Jane", "last": "Citizen", "mobile": "0400"}]
        async with make_client(routes({"/api_1.0/jobcontact.json": contacts})) as client:
            contact = await client.fetch_job_contact("a")
        assert contact["mobile"] == "0400"


class TestMessaging:

    @pytest.mark.asyncio
    async def test_send_sms_payload(self):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"errorCode": 0})

        async with make_client(handler, api_key=None, access_token="tok") as client:
            result = await client.send_sms("+61400000000", "See you Monday", job_uuid="job-1")

        assert captured["url"] == f"{PLATFORM}_sms"
        assert captured["body"] == {"to": "+61400000000", "message": "See you Monday", "regardingJobUUID": "job-1"}
        assert result == {"errorCode": 0}

    @pytest.mark.asyncio
    async def test_send_email_payload(self):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, text="")

        async with make_client(handler, api_key=None, access_token="tok") as client:
            result = await client.send_email("jane@example.com", "Your quote", "Attached")

        assert captured["url"] == f"{PLATFORM}_email"
        assert captured["body"] == {"to": "jane@example.com", "subject": "Your quote", "textBody": "Attached"}
        assert result == {}

    @pytest.mark.asyncio
    async def test_send_unauthorized(self):
        async with make_client(lambda r: httpx.Response(401)) as client:
            with pytest.raises(ServiceM8AuthError):
                await client.send_sms("+61400000000", "hi")


class TestFactory:

    @pytest.mark.asyncio
    async def test_api_key_preferred_by_default(self):
        with patch("command_center.integrations.servicem8.settings") as mock_settings:
            mock_settings.servicem8_api_key = "key"
            mock_settings.servicem8_api_base_url = BASE
            mock_settings.servicem8_platform_url = PLATFORM
            mock_settings.http_timeout_seconds = 5
            client = await create_servicem8_client()
        assert client.uses_oauth is False
        await client.close()

    @pytest.mark.asyncio
    async def test_oauth_preferred_for_messaging(self):
        oauth = AsyncMock()
        oauth.get_valid_access_token = AsyncMock(return_value="tok")
        with patch("command_center.integrations.servicem8.settings") as mock_settings, \
             patch("command_center.services.oauth.get_oauth_service", return_value=oauth):
            mock_settings.servicem8_api_key = "key"
            mock_settings.servicem8_api_base_url = BASE
            mock_settings.servicem8_platform_url = PLATFORM
            mock_settings.http_timeout_seconds = 5
            client = await create_servicem8_client(prefer_oauth=True)
        assert client.uses_oauth is True
        await client.close()

    @pytest.mark.asyncio
    async def test_nothing_configured(self):
        oauth = AsyncMock()
        oauth.get_valid_access_token = AsyncMock(return_value=None)
        with patch("command_center.integrations.servicem8.settings") as mock_settings, \
             patch("command_center.services.oauth.get_oauth_service", return_value=oauth):
            mock_settings.servicem8_api_key = ""
            with pytest.raises(ServiceM8NotConfigured):
                await create_servicem8_client()
