from __future__ import annotations

from dotenv import load_dotenv

from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv(override=True)


class Settings(BaseSettings):
    """Auto-relate pipeline configuration.

    Durations are in seconds.

    Fields
    ------
    openalex_base_url
        Root of the OpenAlex REST API.
    api_delay
        Pause enforced after every OpenAlex call that was actually issued.
    request_timeout
        Per-request timeout for OpenAlex calls.
    api_attempts
        Attempts per OpenAlex call on transport errors (``1`` = no retry).
    batch_window
        Debounce window; every new add-event restarts it.
    settle_delay
        Wait between capturing a batch and reading its items, so that
        metadata populated after the add-event is visible.
    index_ttl
        Age after which the DOI index is rebuilt from a full library scan.
    reference_limit
        Maximum number of referenced works resolved per document.
    page_size
        ``per_page`` used for reference and citing-work queries.
    progress_close_delay
        Seconds the manual-run progress display stays open after finishing.
    """

    openalex_base_url: str = Field("https://api.openalex.org", env="OPENALEX_BASE_URL")
    api_delay: float = Field(0.5, env="API_DELAY")
    request_timeout: float = Field(30.0, env="REQUEST_TIMEOUT")
    api_attempts: int = Field(1, env="API_ATTEMPTS")
    batch_window: float = Field(3.0, env="BATCH_WINDOW")
    settle_delay: float = Field(5.0, env="SETTLE_DELAY")
    index_ttl: float = Field(60.0, env="INDEX_TTL")
    reference_limit: int = Field(100, env="REFERENCE_LIMIT")
    page_size: int = Field(100, env="PAGE_SIZE")
    progress_close_delay: float = Field(4.0, env="PROGRESS_CLOSE_DELAY")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
