"""Per-image analysis: structure + OCR, then an optional budgeted vision call."""

import asyncio
import logging

from context import ExtractionContext
from prompts import VISION_DESCRIPTION_PROMPT
from structural import ImageStructuralMetrics, analyze_structure
from text_utils import truncate
from vision_client import VisionServiceError, VisionServiceUnavailable
from vision_policy import OCR_SUFFICIENT_CHARS, should_use_vision

logger = logging.getLogger(__name__)

VISION_SUMMARY_LIMIT = 1500
OCR_TEXT_LIMIT = 4000

NO_TEXT_DETECTED = "(no text detected)"
VISION_FAILED = "(failed to analyse)"
VISION_UNSUPPORTED = "(skipped – current model does not support vision input)"
VISION_LIMIT_REACHED = "(skipped – vision analysis limit reached for this submission)"


async def analyze_image(
    image_bytes: bytes,
    mime_type: str,
    label: str,
    ctx: ExtractionContext,
    force_vision: bool = False,
    page_text: str | None = None,
) -> str | None:
    """Build the analysis block for one image, or None for an empty payload.

    `page_text` is a PDF text layer for the same raster. A layer long enough to
    rule vision out replaces OCR; a shorter one is embedded next to the OCR
    text and the longer of the two drives the vision decision.
    """
    if not image_bytes:
        return None

    metrics = await asyncio.to_thread(analyze_structure, image_bytes)
    page_text = (page_text or "").strip()

    ocr_heading, ocr_text = "OCR Text", ""
    if len(page_text) < OCR_SUFFICIENT_CHARS:
        ocr = await ctx.ocr.recognize(image_bytes)
        ocr_text = ocr.text.strip()
        if ocr_text and ocr.confidence is not None:
            ocr_heading += f" (confidence {ocr.confidence:.0f}%)"

    vision_section = None
    vision_succeeded = False
    if should_use_vision(max(len(page_text), len(ocr_text)), metrics, force_vision):
        vision_section, vision_succeeded = await _vision_section(
            image_bytes, mime_type, label, metrics, ctx,
        )

    parts = [f"[{label}]"]
    if vision_section:
        parts.append(vision_section)

    if page_text:
        parts.append(f"Page Text:\n{truncate(page_text, OCR_TEXT_LIMIT)}")
    if ocr_text:
        parts.append(f"{ocr_heading}:\n{truncate(ocr_text, OCR_TEXT_LIMIT)}")
    if not page_text and not ocr_text and not vision_succeeded:
        parts.append(f"OCR Text: {NO_TEXT_DETECTED}")

    if metrics is not None:
        parts.append(
            f"Structural Note: edge density {metrics.edge_density:.2f}, "
            f"colour diversity {metrics.color_diversity}"
        )

    return "\n".join(parts)


async def _vision_section(
    image_bytes: bytes,
    mime_type: str,
    label: str,
    metrics: ImageStructuralMetrics | None,
    ctx: ExtractionContext,
) -> tuple[str, bool]:
    """Return (section text, succeeded). Consumes budget only when a call is issued."""
    budget = ctx.budget
    if not budget.enabled or ctx.vision_client is None:
        return f"Vision Analysis: {VISION_UNSUPPORTED}", False
    if not budget.try_consume(label):
        return f"Vision Analysis: {VISION_LIMIT_REACHED}", False

    if metrics is not None:
        payload, payload_mime = metrics.scaled_image, metrics.scaled_mime
    else:
        payload, payload_mime = image_bytes, mime_type

    try:
        summary = await ctx.vision_client.describe(
            payload, payload_mime, ctx.config, VISION_DESCRIPTION_PROMPT,
        )
    except (VisionServiceUnavailable, VisionServiceError) as e:
        logger.error("Vision analysis failed for %s: %s", label, e)
        return f"Vision Analysis: {VISION_FAILED}", False
    except Exception:
        logger.exception("Unexpected vision failure for %s", label)
        return f"Vision Analysis: {VISION_FAILED}", False

    return f"Vision Summary:\n{truncate(summary, VISION_SUMMARY_LIMIT)}", True
