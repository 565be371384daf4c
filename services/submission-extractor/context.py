"""Collaborators shared by every step of one submission extraction."""

from dataclasses import dataclass

from fetcher import AttachmentFetcher
from models import AIConfig
from ocr import OcrEngine
from vision_client import VisionClient
from vision_policy import VisionBudget


@dataclass
class ExtractionContext:
    config: AIConfig
    budget: VisionBudget
    fetcher: AttachmentFetcher
    ocr: OcrEngine
    vision_client: VisionClient | None = None
