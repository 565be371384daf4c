"""Environment-based configuration for the submission extractor."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Submission extractor settings, loaded from environment variables."""

    # Server
    PORT: int = 8092

    # Vision proxy (backend that forwards image descriptions to the LLM provider)
    VISION_SERVICE_URL: str = "http://localhost:3000"
    VISION_ANALYZE_PATH: str = "/api/llm/analyze-image"

    # Vision proxy timeouts and retry
    VISION_TIMEOUT_SECONDS: int = 60
    VISION_CONNECT_TIMEOUT: int = 10
    VISION_RETRY_ATTEMPTS: int = 2
    VISION_RETRY_DELAY: float = 1.0
    VISION_RETRY_BACKOFF: float = 2.0

    # Attachment downloads from the LMS
    FETCH_TIMEOUT_SECONDS: int = 30

    # OCR (empty TESSERACT_CMD = use the binary on PATH)
    TESSERACT_CMD: str = ""
    OCR_TIMEOUT_SECONDS: int = 45

    # Append "Analysed N of M embedded images." to DOCX sections that hit the limit
    DOCX_REPORT_SKIPPED_IMAGES: bool = False

    model_config = {"env_prefix": "", "case_sensitive": True}


settings = Settings()
