"""Content transformation for mirrored messages.

Raw message text is untrusted. It is sanitised into an escaped intermediate
form, converted to HTML, and attachment images are appended with explicit
dimensions so the web forum can reserve space before they load.
"""

from __future__ import annotations

import html
import io
import logging
import re
import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import urlsplit

import httpx
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

THREAD_SLUG_MAX_LENGTH = 255
IMAGE_EXTENSIONS = frozenset({".png", ".jpg", ".jpeg", ".gif", ".webp", ".bmp"})

_USER_MENTION_RE = re.compile(r"<@!?(\d+)>")
_ROLE_MENTION_RE = re.compile(r"<@&(\d+)>")
_CHANNEL_MENTION_RE = re.compile(r"<#(\d+)>")
_CUSTOM_EMOJI_RE = re.compile(r"<a?:([A-Za-z0-9_~]+):(\d+)>")
_TIMESTAMP_RE = re.compile(r"<t:(-?\d+)(?::[tTdDfFR])?>")
_URL_RE = re.compile(r"https?://[^\s<>\"']+")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"(?<![\*\w])\*(?!\s)(.+?)(?<!\s)\*(?![\*\w])")
_UNDERLINE_RE = re.compile(r"__(.+?)__")
_STRIKE_RE = re.compile(r"~~(.+?)~~")
_LINK_SPLIT_RE = re.compile(r"(https?://[^\s<>\"']+?(?=(?:&quot;|&#x27;|&lt;|&gt;|\s|$)))")


class ImageProbeError(RuntimeError):
    """Raised when image metadata cannot be obtained for a URL."""


@dataclass(frozen=True)
class ImageInfo:
    """Dimensions of a remote image."""

    url: str
    width: int
    height: int


@dataclass
class SanitizedContent:
    """Safe intermediate text plus what was extracted while sanitising."""

    text: str
    user_mentions: list[str] = field(default_factory=list)
    role_mentions: list[str] = field(default_factory=list)
    channel_mentions: list[str] = field(default_factory=list)
    emojis: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)


class ImageProbe(Protocol):
    """Anything able to report the dimensions of an image URL."""

    async def probe(self, url: str) -> ImageInfo: ...


def sanitize_content(raw: str | None) -> SanitizedContent:
    """Strip markup from untrusted text and normalise platform tokens.

    Mentions become ``@user``/``@role``/``#channel`` and custom emojis become
    ``:name:``; the result is HTML-escaped and safe to wrap in markup.
    """
    text = unicodedata.normalize("NFC", raw or "")
    text = _CONTROL_CHARS_RE.sub("", text).replace("\r\n", "\n").replace("\r", "\n")

    result = SanitizedContent(text="")
    result.user_mentions = _USER_MENTION_RE.findall(text)
    result.role_mentions = _ROLE_MENTION_RE.findall(text)
    result.channel_mentions = _CHANNEL_MENTION_RE.findall(text)
    result.emojis = [name for name, _ in _CUSTOM_EMOJI_RE.findall(text)]
    result.urls = _URL_RE.findall(text)

    text = _USER_MENTION_RE.sub("@user", text)
    text = _ROLE_MENTION_RE.sub("@role", text)
    text = _CHANNEL_MENTION_RE.sub("#channel", text)
    text = _CUSTOM_EMOJI_RE.sub(lambda match: f":{match.group(1)}:", text)
    text = _TIMESTAMP_RE.sub("", text)

    result.text = html.escape(text.strip(), quote=True)
    return result


def _format_text(text: str) -> str:
    text = _BOLD_RE.sub(r"<strong>\1</strong>", text)
    text = _UNDERLINE_RE.sub(r"<u>\1</u>", text)
    text = _ITALIC_RE.sub(r"<em>\1</em>", text)
    return _STRIKE_RE.sub(r"<s>\1</s>", text)


def _render_inline(line: str) -> str:
    # Code spans and links are cut out first so their contents are not formatted.
    rendered: list[str] = []
    for index, piece in enumerate(_INLINE_CODE_RE.split(line)):
        if index % 2:
            rendered.append(f"<code>{piece}</code>")
            continue
        for part, text in enumerate(_LINK_SPLIT_RE.split(piece)):
            if part % 2:
                rendered.append(f'<a href="{text}" rel="nofollow noopener">{text}</a>')
            else:
                rendered.append(_format_text(text))
    return "".join(rendered)


def convert_to_html(sanitized: str) -> str:
    """Convert sanitised text into paragraphs with line breaks and inline formatting."""
    if not sanitized:
        return ""
    paragraphs = [block for block in re.split(r"\n\s*\n", sanitized) if block.strip()]
    return "".join(
        "<p>" + "<br>".join(_render_inline(line) for line in block.split("\n")) + "</p>"
        for block in paragraphs
    )


def slugify_title(title: str, max_length: int = THREAD_SLUG_MAX_LENGTH) -> str:
    """Return the URL slug for a thread title.

    ``"Hello, World!! "`` becomes ``"hello-world"``.
    """
    slug = title.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    slug = slug.strip("-")
    return slug[:max_length].rstrip("-")


def slugify_channel_name(name: str) -> str:
    """Return the URL slug for a channel name."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def is_image_url(url: str) -> bool:
    """Return True when the URL path ends in a known image extension."""
    path = urlsplit(url).path.lower()
    return any(path.endswith(ext) for ext in IMAGE_EXTENSIONS)


def render_image_tags(images: Iterable[ImageInfo]) -> str:
    """Render ``<img>`` tags separated by line breaks."""
    return "<br>".join(
        f'<img src="{html.escape(img.url, quote=True)}" width="{img.width}" '
        f'height="{img.height}" alt="Image" />'
        for img in images
    )


class HttpImageProbe:
    """Download an image with httpx and read its size with Pillow."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        timeout: float = 10.0,
        max_bytes: int = 8 * 1024 * 1024,
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout
        self._max_bytes = max_bytes

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout, follow_redirects=True)
        return self._client

    async def close(self) -> None:
        """Close the underlying HTTP client if this probe created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def probe(self, url: str) -> ImageInfo:
        """Return the dimensions of the image at ``url``.

        Raises:
            ImageProbeError: On network failure, oversize payloads or non-image content.
        """
        client = self._get_client()
        buffer = bytearray()
        try:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                content_type = response.headers.get("content-type", "")
                if content_type and not content_type.startswith("image/"):
                    raise ImageProbeError(f"{url} is not an image ({content_type})")
                async for chunk in response.aiter_bytes():
                    buffer.extend(chunk)
                    if len(buffer) > self._max_bytes:
                        raise ImageProbeError(f"{url} exceeds {self._max_bytes} bytes")
        except httpx.HTTPError as exc:
            raise ImageProbeError(f"Failed to fetch {url}: {exc}") from exc

        try:
            with Image.open(io.BytesIO(bytes(buffer))) as image:
                width, height = image.size
        except (UnidentifiedImageError, OSError) as exc:
            raise ImageProbeError(f"Could not decode image at {url}: {exc}") from exc
        return ImageInfo(url=url, width=int(width), height=int(height))


class ContentTransformer:
    """Turn raw message text and attachments into forum HTML."""

    def __init__(self, image_probe: ImageProbe | None = None) -> None:
        self.image_probe = image_probe

    async def collect_images(self, attachment_urls: Sequence[str]) -> list[ImageInfo]:
        """Probe every image attachment, skipping the ones that fail."""
        if self.image_probe is None:
            return []
        images: list[ImageInfo] = []
        for url in attachment_urls:
            if not is_image_url(url):
                continue
            try:
                images.append(await self.image_probe.probe(url))
            except ImageProbeError as exc:
                logger.warning("Skipping image %s: %s", url, exc)
        return images

    async def render(self, raw: str | None, attachment_urls: Sequence[str] = ()) -> str:
        """Return sanitised HTML for a message body plus its image attachments."""
        sanitized = sanitize_content(raw)
        body = convert_to_html(sanitized.text)
        images = await self.collect_images(attachment_urls)
        if images:
            image_html = render_image_tags(images)
            body = f"{body}<br>{image_html}" if body else image_html
        return body
