"""Settings shared by the *autorelate* pipeline and its collaborators.

All values are sourced from environment variables (or a ``.env`` file loaded at
import time).  They identify the library being enriched and how we present
ourselves to OpenAlex.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings
from pydantic import Field
from dotenv import load_dotenv

load_dotenv(override=True)

class Settings(BaseSettings):
    """Library and contact configuration.

    Fields
    ------
    openalex_mailto
        Contact e-mail sent as ``mailto`` on every OpenAlex call ("polite
        pool").  Empty means anonymous access.
    es_host
        Elasticsearch HTTP endpoint holding the library index.
    library_index
        Name of the Elasticsearch index that stores library items.
    library_id
        Library whose items take part in DOI matching.
    log_level
        Root logging level used by the command-line entry point.
    """

    openalex_mailto: str = Field("", env="OPENALEX_MAILTO")
    es_host: str = Field("http://localhost:9200", env="ES_HOST")
    library_index: str = Field("library", env="LIBRARY_INDEX")
    library_id: str = Field("user", env="LIBRARY_ID")
    log_level: str = Field("INFO", env="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
