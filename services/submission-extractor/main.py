"""FastAPI submission extractor — turns LMS submissions into prompt-ready text.

Fetches attachments, decodes them per format, runs OCR and budgeted vision
analysis, and returns one bounded text blob for the feedback prompt.
Privacy: attachment and image content is never logged or written to disk.
"""

import logging
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI

from config import settings
from extraction import extract_submission_content
from fetcher import AttachmentFetcher
from models import ExtractionRequest, ExtractionResponse
from ocr import OcrEngine
from vision_client import VisionClient
from vision_policy import VisionBudget

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

_http_client: httpx.AsyncClient | None = None
_vision_client: VisionClient | None = None
_ocr_engine: OcrEngine | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create shared HTTP clients and the OCR handle; OCR initialises on first use."""
    global _http_client, _vision_client, _ocr_engine

    _http_client = httpx.AsyncClient(timeout=float(settings.FETCH_TIMEOUT_SECONDS))
    _ocr_engine = OcrEngine()

    if settings.VISION_SERVICE_URL:
        logger.info("Vision proxy at %s", settings.VISION_SERVICE_URL)
        _vision_client = VisionClient()
    else:
        logger.info("Vision proxy not configured (VISION_SERVICE_URL is empty) — vision analysis disabled")

    yield

    if _vision_client is not None:
        await _vision_client.aclose()
    await _http_client.aclose()


app = FastAPI(title="Grading Assistant Submission Extractor", version="1.0.0", lifespan=lifespan)


@app.post("/api/v1/submissions/extract", response_model=ExtractionResponse)
async def extract(request: ExtractionRequest):
    """Extract prompt-ready content from one submission."""
    start = time.monotonic()
    submission = request.submission

    logger.info(
        "Processing extraction: type=%s attachments=%d platform=%s model=%s",
        submission.submission_type,
        len(submission.attachments),
        request.ai_config.platform,
        request.ai_config.text_model,
    )

    budget = VisionBudget.for_config(request.ai_config)
    content = await extract_submission_content(
        submission,
        request.ai_config,
        fetcher=AttachmentFetcher(_http_client, request.canvas_token),
        ocr=_ocr_engine,
        vision_client=_vision_client,
        budget=budget,
    )

    elapsed_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        "Extraction done: %d chars, %d vision calls, %dms",
        len(content), budget.used, elapsed_ms,
    )

    return ExtractionResponse(
        content=content,
        vision_calls=budget.used,
        vision_sources=budget.unique_sources(),
        processing_time_ms=elapsed_ms,
    )


@app.get("/health")
async def health():
    """Return service status, OCR state and vision proxy configuration."""
    return {
        "status": "healthy",
        "ocr_state": _ocr_engine.state.value if _ocr_engine is not None else "uninitialized",
        "vision_configured": _vision_client is not None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
