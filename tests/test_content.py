# tests/test_content.py
"""Tests for the content transform."""

from __future__ import annotations

import io

import httpx
import pytest
from PIL import Image

from forum_mirror.services.content import (
    ContentTransformer,
    HttpImageProbe,
    ImageInfo,
    ImageProbeError,
    convert_to_html,
    is_image_url,
    render_image_tags,
    sanitize_content,
    slugify_channel_name,
    slugify_title,
)


class StaticProbe:
    def __init__(self, sizes: dict[str, tuple[int, int]]) -> None:
        self.sizes = sizes
        self.probed: list[str] = []

    async def probe(self, url: str) -> ImageInfo:
        self.probed.append(url)
        if url not in self.sizes:
            raise ImageProbeError(f"no such image {url}")
        width, height = self.sizes[url]
        return ImageInfo(url=url, width=width, height=height)


def _png_bytes(width: int, height: int) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(200, 10, 10)).save(buffer, format="PNG")
    return buffer.getvalue()


def test_slugify_title_strips_punctuation_and_trailing_space() -> None:
    assert slugify_title("Hello, World!! ") == "hello-world"


def test_slugify_title_collapses_hyphens_and_caps_length() -> None:
    assert slugify_title("  --Rust -- vs   Go--  ") == "rust-vs-go"
    assert len(slugify_title("a" * 400)) == 255


def test_slugify_title_of_symbols_only_is_empty() -> None:
    assert slugify_title("!!!") == ""


def test_slugify_channel_name() -> None:
    assert slugify_channel_name("General Help") == "general-help"
    assert slugify_channel_name("  Q&A / Support ") == "q-a-support"


def test_sanitize_rewrites_platform_tokens() -> None:
    result = sanitize_content("hi <@123> and <@&456> in <#789> <:wave:42> at <t:1700000000:R>")

    assert result.text == "hi @user and @role in #channel :wave: at"
    assert result.user_mentions == ["123"]
    assert result.role_mentions == ["456"]
    assert result.channel_mentions == ["789"]
    assert result.emojis == ["wave"]


def test_sanitize_escapes_markup() -> None:
    result = sanitize_content('<script>alert("x")</script>')
    assert "<script>" not in result.text
    assert "&lt;script&gt;" in result.text


def test_sanitize_handles_none() -> None:
    assert sanitize_content(None).text == ""


def test_convert_to_html_paragraphs_and_breaks() -> None:
    html = convert_to_html("first line\nsecond line\n\nnext paragraph")
    assert html == "<p>first line<br>second line</p><p>next paragraph</p>"


def test_convert_to_html_inline_formatting() -> None:
    html = convert_to_html("**bold** __under__ ~~gone~~ `x**y**`")
    assert "<strong>bold</strong>" in html
    assert "<u>under</u>" in html
    assert "<s>gone</s>" in html
    assert "<code>x**y**</code>" in html


def test_convert_to_html_links() -> None:
    html = convert_to_html(sanitize_content("see https://example.com/docs now").text)
    assert '<a href="https://example.com/docs" rel="nofollow noopener">' in html


def test_convert_to_html_leaves_links_unformatted() -> None:
    html = convert_to_html(sanitize_content("see https://example.com/a__b__c/*x* and *hi*").text)

    link = "https://example.com/a__b__c/*x*"
    assert f'<a href="{link}" rel="nofollow noopener">{link}</a>' in html
    assert "<u>" not in html
    assert "<em>hi</em>" in html


def test_is_image_url() -> None:
    assert is_image_url("https://cdn.example.com/a/b/photo.PNG?ex=1")
    assert not is_image_url("https://cdn.example.com/a/b/file.zip")


def test_render_image_tags() -> None:
    tags = render_image_tags(
        [ImageInfo("https://x/a.png", 10, 20), ImageInfo("https://x/b.png", 30, 40)]
    )
    assert tags == (
        '<img src="https://x/a.png" width="10" height="20" alt="Image" /><br>'
        '<img src="https://x/b.png" width="30" height="40" alt="Image" />'
    )


@pytest.mark.asyncio
async def test_transformer_appends_probed_images_and_skips_failures() -> None:
    probe = StaticProbe({"https://x/ok.png": (640, 480)})
    transformer = ContentTransformer(probe)

    html = await transformer.render(
        "look", ["https://x/ok.png", "https://x/broken.png", "https://x/notes.txt"]
    )

    assert html == '<p>look</p><br><img src="https://x/ok.png" width="640" height="480" alt="Image" />'
    assert probe.probed == ["https://x/ok.png", "https://x/broken.png"]


@pytest.mark.asyncio
async def test_transformer_without_probe_ignores_attachments() -> None:
    html = await ContentTransformer().render("text only", ["https://x/ok.png"])
    assert html == "<p>text only</p>"


@pytest.mark.asyncio
async def test_http_image_probe_reads_dimensions() -> None:
    payload = _png_bytes(12, 7)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=payload, headers={"content-type": "image/png"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        probe = HttpImageProbe(http_client)
        info = await probe.probe("https://cdn.example.com/pic.png")

    assert (info.width, info.height) == (12, 7)


@pytest.mark.asyncio
async def test_http_image_probe_rejects_non_images() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"<html></html>", headers={"content-type": "text/html"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        probe = HttpImageProbe(http_client)
        with pytest.raises(ImageProbeError):
            await probe.probe("https://cdn.example.com/page.png")


@pytest.mark.asyncio
async def test_http_image_probe_wraps_http_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        probe = HttpImageProbe(http_client)
        with pytest.raises(ImageProbeError):
            await probe.probe("https://cdn.example.com/missing.png")


@pytest.mark.asyncio
async def test_http_image_probe_enforces_size_limit() -> None:
    payload = _png_bytes(50, 50)

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=payload, headers={"content-type": "image/png"})

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
        probe = HttpImageProbe(http_client, max_bytes=10)
        with pytest.raises(ImageProbeError):
            await probe.probe("https://cdn.example.com/big.png")
