"""Tests for logo vectorisation through fal.ai."""
import base64
import json

import httpx
import pytest
import respx

from core.config import Settings
from core.url_allowlist import DisallowedUrlError
from schemas.actions import VectoriseLogoInput
from services.exceptions import ConfigurationError, UpstreamServiceError
from services.vectorize_service import MAX_REDIRECTS, to_data_uri, vectorise_logo

FAL_ENDPOINT = "https://fal.run/fal-ai/recraft/vectorize"
LOGO_URL = "https://firebasestorage.googleapis.com/v0/b/test/o/logo.png?alt=media"
VECTOR_URL = "https://v3.fal.media/files/rabbit/logo.svg"
SVG = b'<svg xmlns="http://www.w3.org/2000/svg"><rect width="1" height="1"/></svg>'

INPUT = VectoriseLogoInput(logo_url=LOGO_URL)


class TestToDataUri:

    def test__to_data_uri__encodes_with_content_type(self) -> None:
        uri = to_data_uri(b"<svg/>", "image/svg+xml; charset=utf-8")

        assert uri == "data:image/svg+xml;base64," + base64.b64encode(b"<svg/>").decode()

    def test__to_data_uri__defaults_to_svg(self) -> None:
        assert to_data_uri(b"x", None).startswith("data:image/svg+xml;base64,")


class TestVectoriseLogo:

    async def test__vectorise_logo__requires_fal_key(self, settings: Settings) -> None:
        settings.fal_key = ""
        with pytest.raises(ConfigurationError, match="FAL_KEY"):
            await vectorise_logo(INPUT, settings)

    async def test__vectorise_logo__rejects_disallowed_input(self, settings: Settings) -> None:
        with respx.mock(assert_all_called=False) as mock:
            route = mock.post(FAL_ENDPOINT)
            with pytest.raises(DisallowedUrlError):
                await vectorise_logo(
                    VectoriseLogoInput(logo_url="https://169.254.169.254/latest/meta-data"),
                    settings,
                )

        assert not route.called

    @respx.mock
    async def test__vectorise_logo__returns_svg_data_uri(self, settings: Settings) -> None:
        fal = respx.post(FAL_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"image": {"url": VECTOR_URL}}),
        )
        respx.get(VECTOR_URL).mock(
            return_value=httpx.Response(
                200, content=SVG, headers={"content-type": "image/svg+xml"},
            ),
        )

        result = await vectorise_logo(INPUT, settings)

        assert result == "data:image/svg+xml;base64," + base64.b64encode(SVG).decode()
        request = fal.calls.last.request
        assert request.headers["Authorization"] == "Key test-fal-key"
        assert json.loads(request.content) == {"image_url": LOGO_URL}

    @respx.mock
    async def test__vectorise_logo__missing_image_url(self, settings: Settings) -> None:
        respx.post(FAL_ENDPOINT).mock(return_value=httpx.Response(200, json={"image": {}}))

        with pytest.raises(UpstreamServiceError) as exc_info:
            await vectorise_logo(INPUT, settings)

        assert str(exc_info.value) == "Fal vectorization failed: Fal did not return an image URL."

    @respx.mock
    async def test__vectorise_logo__provider_error_details(self, settings: Settings) -> None:
        respx.post(FAL_ENDPOINT).mock(
            return_value=httpx.Response(422, json={"detail": "Unsupported image format"}),
        )

        with pytest.raises(UpstreamServiceError, match="Unsupported image format"):
            await vectorise_logo(INPUT, settings)

    @respx.mock
    async def test__vectorise_logo__timeout(self, settings: Settings) -> None:
        respx.post(FAL_ENDPOINT).mock(side_effect=httpx.ReadTimeout("slow"))

        with pytest.raises(UpstreamServiceError, match="timed out"):
            await vectorise_logo(INPUT, settings)

    @respx.mock
    async def test__vectorise_logo__result_url_must_be_allowlisted(
        self, settings: Settings,
    ) -> None:
        respx.post(FAL_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"image": {"url": "https://evil.example/x.svg"}}),
        )

        with pytest.raises(DisallowedUrlError):
            await vectorise_logo(INPUT, settings)

    @respx.mock
    async def test__vectorise_logo__download_failure(self, settings: Settings) -> None:
        respx.post(FAL_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"image": {"url": VECTOR_URL}}),
        )
        respx.get(VECTOR_URL).mock(return_value=httpx.Response(404))

        with pytest.raises(UpstreamServiceError) as exc_info:
            await vectorise_logo(INPUT, settings)

        assert str(exc_info.value) == (
            "Fal vectorization failed: Failed to fetch generated vector: HTTP 404"
        )

    @respx.mock
    async def test__vectorise_logo__follows_allowlisted_redirect(
        self, settings: Settings,
    ) -> None:
        moved = "https://storage.googleapis.com/fal-output/logo.svg"
        respx.post(FAL_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"image": {"url": VECTOR_URL}}),
        )
        respx.get(VECTOR_URL).mock(
            return_value=httpx.Response(302, headers={"location": moved}),
        )
        respx.get(moved).mock(
            return_value=httpx.Response(
                200, content=SVG, headers={"content-type": "image/svg+xml"},
            ),
        )

        result = await vectorise_logo(INPUT, settings)

        assert result == "data:image/svg+xml;base64," + base64.b64encode(SVG).decode()

    @respx.mock
    async def test__vectorise_logo__redirect_loop(self, settings: Settings) -> None:
        respx.post(FAL_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"image": {"url": VECTOR_URL}}),
        )
        download = respx.get(VECTOR_URL).mock(
            return_value=httpx.Response(302, headers={"location": VECTOR_URL}),
        )

        with pytest.raises(UpstreamServiceError, match="Too many redirects"):
            await vectorise_logo(INPUT, settings)

        assert download.call_count == MAX_REDIRECTS + 1

    @respx.mock
    async def test__vectorise_logo__redirect_to_disallowed_host(
        self, settings: Settings,
    ) -> None:
        respx.post(FAL_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"image": {"url": VECTOR_URL}}),
        )
        respx.get(VECTOR_URL).mock(
            return_value=httpx.Response(
                302, headers={"location": "https://169.254.169.254/latest/meta-data"},
            ),
        )

        with pytest.raises(DisallowedUrlError):
            await vectorise_logo(INPUT, settings)

    @respx.mock
    async def test__vectorise_logo__oversized_vector(
        self, settings: Settings, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr("services.vectorize_service.MAX_VECTOR_BYTES", 16)
        respx.post(FAL_ENDPOINT).mock(
            return_value=httpx.Response(200, json={"image": {"url": VECTOR_URL}}),
        )
        respx.get(VECTOR_URL).mock(
            return_value=httpx.Response(
                200, content=b"<svg>" + b" " * 32 + b"</svg>",
                headers={"content-type": "image/svg+xml"},
            ),
        )

        with pytest.raises(UpstreamServiceError, match="exceeds the maximum allowed size"):
            await vectorise_logo(INPUT, settings)
