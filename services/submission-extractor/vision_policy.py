"""When to pay for a vision call, and how many a submission may use.

The thresholds below trade vision spend against description quality. They are
contract values: change them only together with their tests.
"""

import logging
from dataclasses import dataclass, field

from models import AIConfig
from structural import ImageStructuralMetrics

logger = logging.getLogger(__name__)

# OCR text at least this long describes the image well enough on its own
OCR_SUFFICIENT_CHARS = 220
# OCR text at most this long means the image is essentially non-textual
OCR_SPARSE_CHARS = 40
EDGE_DENSITY_THRESHOLD = 0.12
COLOR_DIVERSITY_THRESHOLD = 45

MAX_VISION_CALLS_PER_SUBMISSION = 3

VISION_PLATFORM = "openai"
VISION_MODEL_KEYWORDS = (
    "gpt-4o",
    "gpt-4.1",
    "gpt-4-turbo",
    "gpt-4-vision",
    "gpt-5",
    "o3",
    "o4",
)


def should_use_vision(
    ocr_text_length: int,
    metrics: ImageStructuralMetrics | None,
    force_vision: bool = False,
) -> bool:
    """Decide whether an image merits a vision call. Rule order is the tie-break."""
    if force_vision:
        return True
    if ocr_text_length >= OCR_SUFFICIENT_CHARS:
        return False
    if metrics is None:
        return ocr_text_length <= OCR_SPARSE_CHARS
    if ocr_text_length <= OCR_SPARSE_CHARS:
        return True
    return (
        metrics.edge_density >= EDGE_DENSITY_THRESHOLD
        or metrics.color_diversity >= COLOR_DIVERSITY_THRESHOLD
    )


def is_vision_model(model: str) -> bool:
    name = (model or "").strip().lower()
    return any(keyword in name for keyword in VISION_MODEL_KEYWORDS)


def vision_enabled(config: AIConfig) -> bool:
    """Vision is available only for a vision-capable OpenAI model with an API key."""
    return (
        (config.platform or "").strip().lower() == VISION_PLATFORM
        and is_vision_model(config.text_model)
        and bool((config.api_key or "").strip())
    )


@dataclass
class VisionBudget:
    """Per-submission vision allowance, shared by every attachment, page and image."""

    enabled: bool
    max: int = MAX_VISION_CALLS_PER_SUBMISSION
    used: int = 0
    sources: list[str] = field(default_factory=list)

    @classmethod
    def for_config(cls, config: AIConfig) -> "VisionBudget":
        return cls(enabled=vision_enabled(config))

    @property
    def exhausted(self) -> bool:
        return self.used >= self.max

    def try_consume(self, source: str) -> bool:
        """Claim one vision call for `source`. Returns False when disabled or exhausted."""
        if not self.enabled or self.exhausted:
            return False
        self.used += 1
        self.sources.append(source)
        logger.info("Vision call %d/%d claimed for %s", self.used, self.max, source)
        return True

    def unique_sources(self) -> list[str]:
        return list(dict.fromkeys(self.sources))
