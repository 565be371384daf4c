"""Shared test fixtures for submission extractor tests."""

import io
import sys
from pathlib import Path

import cv2
import numpy as np
import pytest

# Add parent directory to path so we can import the modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from fetcher import FetchError  # noqa: E402
from models import AIConfig, Attachment  # noqa: E402
from ocr import OcrResult  # noqa: E402
from vision_client import VisionServiceError  # noqa: E402


def encode_png(img: np.ndarray) -> bytes:
    _, buf = cv2.imencode(".png", img)
    return buf.tobytes()


def noise_png(seed: int = 0, height: int = 240, width: int = 320) -> bytes:
    """A visually busy image: high edge density and colour diversity."""
    rng = np.random.default_rng(seed)
    img = rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)
    return encode_png(img)


def plain_png(value: int = 240, height: int = 200, width: int = 300) -> bytes:
    img = np.full((height, width, 3), value, dtype=np.uint8)
    return encode_png(img)


def make_pdf(page_texts: list[str]) -> bytes:
    """Build a PDF with one page per entry; empty strings give blank pages."""
    import fitz

    doc = fitz.open()
    for text in page_texts:
        page = doc.new_page()
        if text:
            page.insert_text((50, 72), text, fontsize=9)
    data = doc.tobytes()
    doc.close()
    return data


def make_docx(paragraphs: list[str], images: list[bytes]) -> bytes:
    import docx

    document = docx.Document()
    for text in paragraphs:
        document.add_paragraph(text)
    for image in images:
        document.add_picture(io.BytesIO(image))
    buf = io.BytesIO()
    document.save(buf)
    return buf.getvalue()


def rich_text(lines: int = 12) -> str:
    return "\n".join(
        f"Line {i}: the student explains the experimental method and its results."
        for i in range(lines)
    )


class FakeFetcher:
    """Serves attachment bytes by URL; unknown URLs fail like a 404."""

    def __init__(self, files: dict[str, bytes] | None = None):
        self.files = files or {}
        self.requested: list[str] = []

    async def fetch_bytes(self, url: str) -> bytes:
        self.requested.append(url)
        if url not in self.files:
            raise FetchError("HTTP 404")
        return self.files[url]


class FakeOcr:
    """Returns a fixed OCR text for every image."""

    def __init__(self, text: str = "", confidence: float | None = None):
        self.text = text
        self.confidence = confidence
        self.calls = 0

    async def recognize(self, image_bytes: bytes) -> OcrResult:
        self.calls += 1
        return OcrResult(text=self.text, confidence=self.confidence)


class FakeVisionClient:
    """Records describe() calls; optionally fails every call."""

    def __init__(self, fail: bool = False, summary: str = "- A labelled diagram"):
        self.fail = fail
        self.summary = summary
        self.calls: list[dict] = []

    async def describe(self, image_bytes, mime_type, config, prompt) -> str:
        self.calls.append({"image_bytes": image_bytes, "mime_type": mime_type, "model": config.text_model})
        if self.fail:
            raise VisionServiceError("provider rejected the image")
        return self.summary


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def vision_config() -> AIConfig:
    return AIConfig(platform="openai", api_key="sk-test", text_model="gpt-4o-mini", system_prompt="Grade fairly.")


@pytest.fixture
def text_only_config() -> AIConfig:
    return AIConfig(platform="anthropic", api_key="sk-ant", text_model="claude-sonnet", system_prompt="")


@pytest.fixture
def busy_image_bytes() -> bytes:
    return noise_png()


@pytest.fixture
def plain_image_bytes() -> bytes:
    return plain_png()


@pytest.fixture
def large_image_bytes() -> bytes:
    img = np.full((2000, 3000, 3), 200, dtype=np.uint8)
    _, buf = cv2.imencode(".jpg", img)
    return buf.tobytes()


@pytest.fixture
def invalid_bytes() -> bytes:
    """Non-image bytes for testing graceful degradation."""
    return b"this is not an image file at all"


def attachment(filename: str, mime_type: str = "", size: int = 1024) -> Attachment:
    return Attachment(filename=filename, url=f"https://canvas.test/files/{filename}", mime_type=mime_type, size_bytes=size)
