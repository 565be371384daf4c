"""Tests for the lazily initialised OCR handle."""

import asyncio
import sys
from pathlib import Path

import pytest
import pytesseract

sys.path.insert(0, str(Path(__file__).parent.parent))

import ocr as ocr_module
from ocr import EMPTY_RESULT, OcrEngine, OcrState

pytestmark = pytest.mark.anyio


def _tesseract_data(words: list[tuple[str, int, float]]) -> dict:
    """Build an image_to_data dict from (word, line_num, conf) tuples."""
    return {
        "text": [w for w, _, _ in words],
        "block_num": [1 for _ in words],
        "par_num": [1 for _ in words],
        "line_num": [line for _, line, _ in words],
        "conf": [conf for _, _, conf in words],
    }


@pytest.fixture
def version_calls(monkeypatch):
    calls = {"version": 0}

    def fake_version():
        calls["version"] += 1
        return "5.3.0"

    monkeypatch.setattr(ocr_module.pytesseract, "get_tesseract_version", fake_version)
    monkeypatch.setattr(ocr_module.pytesseract, "get_languages", lambda config="": ["eng", "osd"])
    return calls


class TestInitialisation:
    async def test_starts_uninitialized(self):
        assert OcrEngine(tesseract_cmd="").state is OcrState.UNINITIALIZED

    async def test_initialises_once(self, version_calls, monkeypatch, plain_image_bytes):
        monkeypatch.setattr(ocr_module.pytesseract, "image_to_data", lambda *a, **kw: _tesseract_data([]))
        engine = OcrEngine(tesseract_cmd="")

        await engine.recognize(plain_image_bytes)
        await engine.recognize(plain_image_bytes)

        assert engine.state is OcrState.READY
        assert version_calls["version"] == 1

    async def test_concurrent_callers_share_initialisation(self, version_calls, monkeypatch, plain_image_bytes):
        monkeypatch.setattr(ocr_module.pytesseract, "image_to_data", lambda *a, **kw: _tesseract_data([]))
        engine = OcrEngine(tesseract_cmd="")

        await asyncio.gather(*(engine.recognize(plain_image_bytes) for _ in range(4)))

        assert version_calls["version"] == 1

    async def test_failure_is_cached(self, monkeypatch, plain_image_bytes):
        calls = {"version": 0}

        def missing_binary():
            calls["version"] += 1
            raise pytesseract.TesseractNotFoundError()

        monkeypatch.setattr(ocr_module.pytesseract, "get_tesseract_version", missing_binary)
        engine = OcrEngine(tesseract_cmd="")

        first = await engine.recognize(plain_image_bytes)
        second = await engine.recognize(plain_image_bytes)

        assert first == EMPTY_RESULT
        assert second == EMPTY_RESULT
        assert engine.state is OcrState.FAILED
        assert calls["version"] == 1

    async def test_missing_english_data_fails(self, monkeypatch, plain_image_bytes):
        monkeypatch.setattr(ocr_module.pytesseract, "get_tesseract_version", lambda: "5.3.0")
        monkeypatch.setattr(ocr_module.pytesseract, "get_languages", lambda config="": ["deu"])
        engine = OcrEngine(tesseract_cmd="")

        assert await engine.recognize(plain_image_bytes) == EMPTY_RESULT
        assert engine.state is OcrState.FAILED


class TestRecognize:
    async def test_words_grouped_into_lines(self, version_calls, monkeypatch, plain_image_bytes):
        data = _tesseract_data([
            ("Newton's", 1, 91.0),
            ("second", 1, 89.0),
            ("", 1, -1),
            ("law", 2, 96.0),
            ("  ", 2, -1),
        ])
        seen = {}

        def fake_image_to_data(image, lang, output_type, timeout):
            seen["lang"] = lang
            return data

        monkeypatch.setattr(ocr_module.pytesseract, "image_to_data", fake_image_to_data)
        engine = OcrEngine(tesseract_cmd="")

        result = await engine.recognize(plain_image_bytes)

        assert result.text == "Newton's second\nlaw"
        assert result.confidence == 92.0
        assert seen["lang"] == "eng"

    async def test_no_words_gives_no_confidence(self, version_calls, monkeypatch, plain_image_bytes):
        monkeypatch.setattr(ocr_module.pytesseract, "image_to_data", lambda *a, **kw: _tesseract_data([]))
        engine = OcrEngine(tesseract_cmd="")

        result = await engine.recognize(plain_image_bytes)
        assert result.text == ""
        assert result.confidence is None

    async def test_recognition_error_returns_empty(self, version_calls, monkeypatch, plain_image_bytes):
        def timeout(*args, **kwargs):
            raise RuntimeError("Tesseract process timeout")

        monkeypatch.setattr(ocr_module.pytesseract, "image_to_data", timeout)
        engine = OcrEngine(tesseract_cmd="")

        assert await engine.recognize(plain_image_bytes) == EMPTY_RESULT
        assert engine.state is OcrState.READY

    async def test_undecodable_image_returns_empty(self, version_calls, invalid_bytes):
        engine = OcrEngine(tesseract_cmd="")
        assert await engine.recognize(invalid_bytes) == EMPTY_RESULT

    async def test_empty_payload_skips_initialisation(self, version_calls):
        engine = OcrEngine(tesseract_cmd="")
        assert await engine.recognize(b"") == EMPTY_RESULT
        assert engine.state is OcrState.UNINITIALIZED
        assert version_calls["version"] == 0
