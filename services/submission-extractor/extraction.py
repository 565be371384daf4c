"""Extraction orchestrator — reduce a submission to one bounded prompt section.

Attachments are processed strictly in the order supplied so the vision budget
is consumed deterministically. Nothing here raises: failures degrade to
placeholder text for the affected attachment only.
"""

import logging

from context import ExtractionContext
from decoders import decode_attachment
from fetcher import AttachmentFetcher, FetchError
from models import AIConfig, Attachment, Submission
from ocr import OcrEngine
from text_utils import truncate
from vision_client import VisionClient
from vision_policy import VisionBudget

logger = logging.getLogger(__name__)

MAX_SUBMISSION_CHARS = 40_000
SECTION_SEPARATOR = "\n\n" + "=" * 40 + "\n\n"

NO_EXTRACTABLE_CONTENT = "(no extractable content)"
CONTENT_NOT_PROCESSED = "(content could not be processed)"
NO_FILES_ATTACHED = "(no files attached)"
MEDIA_RECORDING_NOTE = (
    "MEDIA RECORDING SUBMISSION:\n"
    "This submission is an audio/video recording. No automated transcript is "
    "available; please review the recording manually."
)


async def extract_submission_content(
    submission: Submission,
    config: AIConfig,
    fetcher: AttachmentFetcher,
    ocr: OcrEngine,
    vision_client: VisionClient | None = None,
    budget: VisionBudget | None = None,
) -> str:
    """Produce the submission text for the feedback prompt. Always returns a string.

    One VisionBudget covers the whole submission; pass one in to inspect its
    usage afterwards.
    """
    if budget is None:
        budget = VisionBudget.for_config(config)

    ctx = ExtractionContext(
        config=config,
        budget=budget,
        fetcher=fetcher,
        ocr=ocr,
        vision_client=vision_client,
    )

    try:
        return await _extract(submission, ctx)
    except Exception:
        logger.exception("Submission extraction failed")
        return f"SUBMISSION:\n{CONTENT_NOT_PROCESSED}"


async def _extract(submission: Submission, ctx: ExtractionContext) -> str:
    kind = submission.submission_type or ""

    if kind == "online_text_entry":
        return f"TEXT SUBMISSION:\n{submission.body or ''}"
    if kind == "online_url":
        return f"URL SUBMISSION:\n{submission.url or ''}"
    if kind == "media_recording":
        return MEDIA_RECORDING_NOTE
    if kind == "online_upload" or submission.attachments:
        return await _extract_uploads(submission.attachments, ctx)

    return f"SUBMISSION TYPE: {kind or 'unknown'}\n{NO_EXTRACTABLE_CONTENT}"


async def _extract_uploads(attachments: list[Attachment], ctx: ExtractionContext) -> str:
    if not attachments:
        return f"FILE SUBMISSION:\n{NO_FILES_ATTACHED}"

    sections = []
    for attachment in attachments:
        content = await _attachment_content(attachment, ctx)
        sections.append(format_attachment_section(attachment, content))

    count = len(attachments)
    header = f"FILE SUBMISSION ({count} file{'s' if count != 1 else ''}):"
    body = truncate(f"{header}\n\n{SECTION_SEPARATOR.join(sections)}", MAX_SUBMISSION_CHARS)

    summary = vision_usage_summary(ctx.budget, ctx.config)
    if summary:
        return f"{body}\n\n{summary}"
    return body


async def _attachment_content(attachment: Attachment, ctx: ExtractionContext) -> str:
    try:
        content = await decode_attachment(attachment, ctx)
    except FetchError as e:
        logger.warning("Could not fetch %s: %s", attachment.filename, e)
        return NO_EXTRACTABLE_CONTENT
    except Exception:
        logger.exception("Could not process %s", attachment.filename)
        return CONTENT_NOT_PROCESSED

    if not content or not content.strip():
        return NO_EXTRACTABLE_CONTENT
    return content


def format_attachment_section(attachment: Attachment, content: str) -> str:
    return (
        f"File: {attachment.filename}\n"
        f"Type: {attachment.mime_type or 'unknown'}\n"
        f"Size: {attachment.size_bytes} bytes\n"
        f"Extracted Content:\n{content}"
    )


def vision_usage_summary(budget: VisionBudget, config: AIConfig) -> str | None:
    """Trailing note on vision usage, or None when no vision call was made."""
    if budget.used < 1:
        return None

    return (
        "VISION ANALYSIS USAGE:\n"
        f"Model: {config.text_model}\n"
        f"Vision calls: {budget.used} of {budget.max}\n"
        f"Sources: {', '.join(budget.unique_sources())}"
    )
