"""Tests for presentation downloads."""

import httpx
import pytest

from conftest import add, auth_headers
from deckster.main import app
from deckster.models import ChatSession
from deckster.services.presentations import (
    DownloadServiceClient,
    LayoutServiceClient,
    PresentationServiceError,
    get_download_client,
    get_layout_client,
)


def _layout(handler) -> LayoutServiceClient:
    return LayoutServiceClient(base_url="https://layout.test", transport=httpx.MockTransport(handler))


def _downloads(handler) -> DownloadServiceClient:
    return DownloadServiceClient(base_url="https://download.test", transport=httpx.MockTransport(handler))


class TestLayoutDownload:
    def test_downloads_owned_presentation(self, client, user):
        add(ChatSession(id="s1", user_id=user.id, final_presentation_id="pres-1"))
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"%PDF-1.7")

        app.dependency_overrides[get_layout_client] = lambda: _layout(handler)

        response = client.get(
            "/api/presentations/pres-1/download/pdf?version=refined", headers=auth_headers(user)
        )

        assert response.status_code == 200
        assert response.content == b"%PDF-1.7"
        assert response.headers["content-type"] == "application/pdf"
        assert "presentation_refined_" in response.headers["content-disposition"]
        assert seen[0].url.path == "/api/presentations/pres-1/download/pdf"
        assert seen[0].url.params["version"] == "refined"

    def test_foreign_presentation_not_found(self, client, user, other_user):
        add(ChatSession(id="s1", user_id=other_user.id, final_presentation_id="pres-1"))
        app.dependency_overrides[get_layout_client] = lambda: _layout(
            lambda request: httpx.Response(200, content=b"%PDF")
        )

        response = client.get("/api/presentations/pres-1/download/pdf", headers=auth_headers(user))

        assert response.status_code == 404

    def test_upstream_failure(self, client, user):
        add(ChatSession(id="s1", user_id=user.id, strawman_presentation_id="pres-1"))
        app.dependency_overrides[get_layout_client] = lambda: _layout(
            lambda request: httpx.Response(500, text="render crashed")
        )

        response = client.get("/api/presentations/pres-1/download/pptx", headers=auth_headers(user))

        assert response.status_code == 502
        assert response.json()["error"].startswith("Failed to download presentation")

    def test_unconfigured_layout_service(self, client, user):
        add(ChatSession(id="s1", user_id=user.id, final_presentation_id="pres-1"))
        app.dependency_overrides[get_layout_client] = lambda: LayoutServiceClient(base_url="")

        response = client.get("/api/presentations/pres-1/download/pdf", headers=auth_headers(user))

        assert response.status_code == 503


class TestConversion:
    def test_converts_pptx(self, client, user):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, content=b"PK\x03\x04")

        app.dependency_overrides[get_download_client] = lambda: _downloads(handler)

        response = client.post(
            "/api/downloads/convert/pptx",
            json={"presentationUrl": "https://viewer.test/p/deck-42", "slideCount": 8},
            headers=auth_headers(user),
        )

        assert response.status_code == 200
        assert "presentation_deck-42_" in response.headers["content-disposition"]
        assert seen[0].url.path == "/convert/pptx"

    def test_pptx_needs_slide_count(self, client, user):
        app.dependency_overrides[get_download_client] = lambda: _downloads(
            lambda request: httpx.Response(200, content=b"")
        )

        response = client.post(
            "/api/downloads/convert/pptx",
            json={"presentationUrl": "https://viewer.test/p/deck-42"},
            headers=auth_headers(user),
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Valid slide count is required"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status, body, expected_status, expected",
        [
            (422, {"detail": "bad url"}, 422, "Invalid request: bad url"),
            (500, {"detail": "chrome died"}, 502, "Conversion failed: chrome died"),
            (503, {}, 503, "Service temporarily unavailable. Please try again."),
        ],
    )
    async def test_maps_upstream_errors(self, status, body, expected_status, expected):
        client = _downloads(lambda request: httpx.Response(status, json=body))

        with pytest.raises(PresentationServiceError) as excinfo:
            await client.convert_pdf("https://viewer.test/p/deck-42")

        assert excinfo.value.status_code == expected_status
        assert excinfo.value.message == expected
