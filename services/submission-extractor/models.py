"""Pydantic models for LMS submissions, AI settings and the extraction API."""

from pydantic import BaseModel, ConfigDict, Field


class Attachment(BaseModel):
    """A file attached to a submission, as returned by the Canvas API."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    filename: str
    url: str
    mime_type: str = Field(default="", alias="content-type")
    size_bytes: int = Field(default=0, alias="size")


class Submission(BaseModel):
    """The parts of a Canvas submission record needed for extraction."""

    submission_type: str | None = None
    body: str | None = None
    url: str | None = None
    attachments: list[Attachment] = []


class AIConfig(BaseModel):
    """Provider and model selection owned by the grading UI."""

    model_config = ConfigDict(frozen=True)

    platform: str
    api_key: str = ""
    text_model: str = ""
    audio_model: str | None = None
    system_prompt: str = ""


class ExtractionRequest(BaseModel):
    submission: Submission
    ai_config: AIConfig
    canvas_token: str | None = None


class ExtractionResponse(BaseModel):
    content: str
    vision_calls: int
    vision_sources: list[str] = []
    processing_time_ms: int
