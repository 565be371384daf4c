"""Tesseract OCR behind a lazily initialised, process-wide handle.

The handle moves from UNINITIALIZED to READY or FAILED exactly once. A failed
initialisation is never retried; recognize() then returns empty text.
"""

import asyncio
import enum
import io
import logging
from dataclasses import dataclass

import pytesseract
from PIL import Image

from config import settings

logger = logging.getLogger(__name__)

OCR_LANGUAGE = "eng"


class OcrState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class OcrResult:
    text: str
    confidence: float | None = None


EMPTY_RESULT = OcrResult(text="", confidence=None)


class OcrEngine:
    """Single-flight Tesseract wrapper. recognize() never raises."""

    def __init__(self, tesseract_cmd: str | None = None, timeout: int | None = None):
        self._tesseract_cmd = tesseract_cmd if tesseract_cmd is not None else settings.TESSERACT_CMD
        self._timeout = timeout if timeout is not None else settings.OCR_TIMEOUT_SECONDS
        self._state = OcrState.UNINITIALIZED
        self._init_task: asyncio.Task | None = None

    @property
    def state(self) -> OcrState:
        return self._state

    async def recognize(self, image_bytes: bytes) -> OcrResult:
        if not image_bytes or not await self._ensure_ready():
            return EMPTY_RESULT

        try:
            return await asyncio.to_thread(self._recognize_sync, image_bytes)
        except Exception as e:
            logger.warning("OCR failed on %d-byte image: %s", len(image_bytes), e)
            return EMPTY_RESULT

    async def _ensure_ready(self) -> bool:
        if self._state is OcrState.UNINITIALIZED:
            # Concurrent first callers await the same task
            if self._init_task is None:
                self._init_task = asyncio.ensure_future(self._initialize())
            await self._init_task
        return self._state is OcrState.READY

    async def _initialize(self) -> None:
        try:
            version = await asyncio.to_thread(self._check_install)
        except Exception as e:
            logger.error("OCR unavailable until restart: %s", e)
            self._state = OcrState.FAILED
            return

        logger.info("Tesseract %s ready (lang=%s)", version, OCR_LANGUAGE)
        self._state = OcrState.READY

    def _check_install(self) -> str:
        if self._tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self._tesseract_cmd

        version = pytesseract.get_tesseract_version()
        languages = pytesseract.get_languages(config="")
        if OCR_LANGUAGE not in languages:
            raise RuntimeError(f"Tesseract language data '{OCR_LANGUAGE}' not installed")
        return str(version)

    def _recognize_sync(self, image_bytes: bytes) -> OcrResult:
        with Image.open(io.BytesIO(image_bytes)) as img:
            rgb = img.convert("RGB")

        data = pytesseract.image_to_data(
            rgb,
            lang=OCR_LANGUAGE,
            output_type=pytesseract.Output.DICT,
            timeout=self._timeout,
        )

        lines: dict[tuple[int, int, int], list[str]] = {}
        confidences: list[float] = []
        for i, word in enumerate(data["text"]):
            word = (word or "").strip()
            if not word:
                continue
            key = (data["block_num"][i], data["par_num"][i], data["line_num"][i])
            lines.setdefault(key, []).append(word)

            conf = float(data["conf"][i])
            if conf >= 0:
                confidences.append(conf)

        text = "\n".join(" ".join(words) for words in lines.values())
        confidence = round(sum(confidences) / len(confidences), 1) if confidences else None
        return OcrResult(text=text, confidence=confidence)
