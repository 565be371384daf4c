"""Per-format content extraction for submission attachments.

Dispatch is by file extension first, then MIME type:
- text/code/markup: decoded and capped at TEXT_CHAR_LIMIT
- DOCX: body text plus up to DOCX_OCR_IMAGE_LIMIT embedded images
- PDF: up to DOCUMENT_OCR_PAGE_LIMIT pages, text layer + rendered raster
- raster images: analysed directly
Anything else is unsupported and yields None.
"""

import asyncio
import enum
import io
import json
import logging
import mimetypes

import docx
import fitz  # PyMuPDF
from docx.table import Table

from config import settings
from context import ExtractionContext
from image_analysis import analyze_image
from models import Attachment
from text_utils import collapse_blank_lines, truncate

logger = logging.getLogger(__name__)

TEXT_CHAR_LIMIT = 10_000
DOCX_OCR_IMAGE_LIMIT = 5
DOCUMENT_OCR_PAGE_LIMIT = 5
PDF_RENDER_SCALE = 1.5

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

TEXT_EXTENSIONS = frozenset({
    "txt", "text", "md", "markdown", "rst", "tex", "bib", "log", "csv", "tsv",
    "json", "ipynb", "xml", "svg", "html", "htm", "css", "scss", "sass", "less",
    "yaml", "yml", "toml", "ini", "cfg", "conf", "env",
    "py", "js", "mjs", "ts", "jsx", "tsx", "go", "c", "cc", "cpp", "h", "hpp",
    "java", "cs", "php", "rb", "rs", "swift", "kt", "kts", "scala", "r", "m",
    "jl", "lua", "pl", "hs", "ml", "ex", "exs", "erl", "clj", "dart", "vue",
    "sh", "bash", "zsh", "ps1", "bat", "sql", "asm", "s", "v", "vhd", "vhdl",
    "gradle", "makefile", "dockerfile",
})
IMAGE_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "gif", "webp", "bmp", "tif", "tiff"})


class FileKind(str, enum.Enum):
    TEXT = "text"
    DOCX = "docx"
    PDF = "pdf"
    IMAGE = "image"
    UNSUPPORTED = "unsupported"


def file_extension(filename: str) -> str:
    name = (filename or "").strip().lower()
    if "." not in name:
        # Makefile, Dockerfile
        return name
    return name.rsplit(".", 1)[-1]


def classify(attachment: Attachment) -> FileKind:
    ext = file_extension(attachment.filename)
    if ext == "pdf":
        return FileKind.PDF
    if ext == "docx":
        return FileKind.DOCX
    if ext in IMAGE_EXTENSIONS:
        return FileKind.IMAGE
    if ext in TEXT_EXTENSIONS:
        return FileKind.TEXT

    mime = (attachment.mime_type or "").split(";")[0].strip().lower()
    if mime == "application/pdf":
        return FileKind.PDF
    if mime == DOCX_MIME:
        return FileKind.DOCX
    if mime.startswith("image/") and mime != "image/svg+xml":
        return FileKind.IMAGE
    if mime.startswith("text/"):
        return FileKind.TEXT
    return FileKind.UNSUPPORTED


async def decode_attachment(attachment: Attachment, ctx: ExtractionContext) -> str | None:
    """Extract prompt text for one attachment. Raises FetchError on download failure."""
    kind = classify(attachment)
    if kind is FileKind.UNSUPPORTED:
        logger.info("No extractor for %s (%s)", attachment.filename, attachment.mime_type or "unknown type")
        return None

    data = await ctx.fetcher.fetch_bytes(attachment.url)
    logger.info("Decoding %s as %s (%d bytes)", attachment.filename, kind.value, len(data))

    if kind is FileKind.TEXT:
        return decode_text(data, attachment.filename)
    if kind is FileKind.IMAGE:
        return await analyze_image(data, _image_mime(attachment), attachment.filename, ctx)
    if kind is FileKind.DOCX:
        return await decode_docx(data, attachment.filename, ctx)
    return await decode_pdf(data, attachment.filename, ctx)


def decode_text(data: bytes, filename: str = "") -> str:
    text = data.decode("utf-8-sig", errors="replace")
    if file_extension(filename) == "ipynb":
        text = _notebook_text(text)
    return truncate(text, TEXT_CHAR_LIMIT)


def _notebook_text(raw: str) -> str:
    """Flatten a Jupyter notebook to its cell sources; raw JSON if it does not parse."""
    try:
        cells = json.loads(raw).get("cells", [])
    except (ValueError, AttributeError):
        return raw

    blocks = []
    for cell in cells:
        source = cell.get("source", "")
        if isinstance(source, list):
            source = "".join(source)
        if source.strip():
            blocks.append(f"[{cell.get('cell_type', 'cell')}]\n{source.rstrip()}")
    return "\n\n".join(blocks)


def _image_mime(attachment: Attachment) -> str:
    mime = (attachment.mime_type or "").split(";")[0].strip().lower()
    if mime.startswith("image/"):
        return mime
    guessed, _ = mimetypes.guess_type(attachment.filename)
    return guessed or "image/png"


async def decode_docx(data: bytes, filename: str, ctx: ExtractionContext) -> str | None:
    text, images, total_images = await asyncio.to_thread(_read_docx, data, DOCX_OCR_IMAGE_LIMIT)

    sections = []
    if text:
        sections.append(truncate(text, TEXT_CHAR_LIMIT))

    for index, (blob, mime) in enumerate(images, start=1):
        analysis = await analyze_image(blob, mime, f"{filename} (image {index})", ctx)
        if analysis:
            sections.append(analysis)

    if total_images > len(images):
        logger.info("%s: analysed %d of %d embedded images", filename, len(images), total_images)
        if settings.DOCX_REPORT_SKIPPED_IMAGES:
            sections.append(f"Note: Analysed {len(images)} of {total_images} embedded images.")

    return "\n\n".join(sections) or None


def _read_docx(data: bytes, image_limit: int) -> tuple[str, list[tuple[bytes, str]], int]:
    """Return (plain text, first `image_limit` images in document order, total image count)."""
    document = docx.Document(io.BytesIO(data))

    blocks: list[str] = []
    for item in document.iter_inner_content():
        if isinstance(item, Table):
            for row in item.rows:
                blocks.append("\t".join(cell.text.strip() for cell in row.cells))
        else:
            blocks.append(item.text)
    text = collapse_blank_lines("\n".join(blocks))

    images: list[tuple[bytes, str]] = []
    total = 0
    for rel_id in document.element.body.xpath(".//a:blip/@r:embed"):
        part = document.part.related_parts.get(rel_id)
        if part is None or not getattr(part, "content_type", "").startswith("image/"):
            continue
        total += 1
        if len(images) < image_limit:
            images.append((part.blob, part.content_type))

    return text, images, total


async def decode_pdf(data: bytes, filename: str, ctx: ExtractionContext) -> str | None:
    pages, total_pages = await asyncio.to_thread(_render_pdf_pages, data, DOCUMENT_OCR_PAGE_LIMIT)

    sections = []
    for number, (page_text, png) in enumerate(pages, start=1):
        # Text-free pages (scans, drawings) always get a vision pass
        analysis = await analyze_image(
            png,
            "image/png",
            f"{filename} (page {number})",
            ctx,
            force_vision=not page_text,
            page_text=page_text,
        )
        sections.append(f"--- Page {number} ---\n{analysis or '(page could not be analysed)'}")

    if total_pages > len(pages):
        sections.append(f"Note: Processed {len(pages)} pages out of {total_pages} total.")

    return "\n\n".join(sections) or None


def _render_pdf_pages(data: bytes, page_limit: int) -> tuple[list[tuple[str, bytes]], int]:
    """Return [(text layer, PNG raster)] for the first `page_limit` pages and the page count."""
    pages: list[tuple[str, bytes]] = []
    with fitz.open(stream=data, filetype="pdf") as doc:
        total = doc.page_count
        matrix = fitz.Matrix(PDF_RENDER_SCALE, PDF_RENDER_SCALE)
        for index in range(min(page_limit, total)):
            page = doc.load_page(index)
            text = (page.get_text("text") or "").strip()
            pix = page.get_pixmap(matrix=matrix, alpha=False)
            pages.append((text, pix.tobytes("png")))
    return pages, total
