from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app.enums import SearchStrategy

KNOWN_EXTERNAL_SOURCES = ("open_library", "google_books")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    database_url: str = Field(alias="DATABASE_URL")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    catalog_search_strategy: SearchStrategy = Field(default=SearchStrategy.portable, alias="CATALOG_SEARCH_STRATEGY")
    search_sufficiency_threshold: int = Field(default=10, alias="SEARCH_SUFFICIENCY_THRESHOLD")
    search_default_page_size: int = Field(default=20, alias="SEARCH_DEFAULT_PAGE_SIZE")
    search_max_page_size: int = Field(default=50, alias="SEARCH_MAX_PAGE_SIZE")
    search_max_query_length: int = Field(default=100, alias="SEARCH_MAX_QUERY_LENGTH")

    external_sources: str = Field(default="open_library,google_books", alias="EXTERNAL_SOURCES")
    external_call_timeout_seconds: float = Field(default=5.0, alias="EXTERNAL_CALL_TIMEOUT_SECONDS")
    external_overall_deadline_seconds: float = Field(default=8.0, alias="EXTERNAL_OVERALL_DEADLINE_SECONDS")
    external_max_results_per_source: int = Field(default=20, alias="EXTERNAL_MAX_RESULTS_PER_SOURCE")
    external_baseline_score: float = Field(default=0.9, alias="EXTERNAL_BASELINE_SCORE")
    external_priority_step: float = Field(default=0.1, alias="EXTERNAL_PRIORITY_STEP")

    breaker_failure_threshold: int = Field(default=5, alias="BREAKER_FAILURE_THRESHOLD")
    breaker_failure_window_seconds: float = Field(default=60.0, alias="BREAKER_FAILURE_WINDOW_SECONDS")
    breaker_open_seconds: float = Field(default=30.0, alias="BREAKER_OPEN_SECONDS")

    rate_limit_capacity: int = Field(default=10, alias="RATE_LIMIT_CAPACITY")
    rate_limit_refill_per_second: float = Field(default=2.0, alias="RATE_LIMIT_REFILL_PER_SECOND")

    cache_ttl_seconds: float = Field(default=300.0, alias="CACHE_TTL_SECONDS")
    cache_sweep_seconds: float = Field(default=60.0, alias="CACHE_SWEEP_SECONDS")
    cache_max_entries: int = Field(default=1000, alias="CACHE_MAX_ENTRIES")

    open_library_base_url: str = Field(default="https://openlibrary.org", alias="OPEN_LIBRARY_BASE_URL")
    open_library_covers_url: str = Field(default="https://covers.openlibrary.org/b", alias="OPEN_LIBRARY_COVERS_URL")
    google_books_base_url: str = Field(default="https://www.googleapis.com/books/v1", alias="GOOGLE_BOOKS_BASE_URL")
    google_books_api_key: str = Field(default="", alias="GOOGLE_BOOKS_API_KEY")

    @property
    def external_source_names(self) -> list[str]:
        return [name.strip() for name in self.external_sources.split(",") if name.strip()]

    @model_validator(mode="after")
    def validate_required_runtime(self) -> "Settings":
        if not self.database_url.strip():
            raise ValueError("DATABASE_URL is required")
        if self.search_sufficiency_threshold < 1:
            raise ValueError("SEARCH_SUFFICIENCY_THRESHOLD must be >= 1")
        if self.search_max_page_size < 1:
            raise ValueError("SEARCH_MAX_PAGE_SIZE must be >= 1")
        if not 1 <= self.search_default_page_size <= self.search_max_page_size:
            raise ValueError("SEARCH_DEFAULT_PAGE_SIZE must be between 1 and SEARCH_MAX_PAGE_SIZE")
        if self.search_max_query_length < 1:
            raise ValueError("SEARCH_MAX_QUERY_LENGTH must be >= 1")
        unknown = [name for name in self.external_source_names if name not in KNOWN_EXTERNAL_SOURCES]
        if unknown:
            raise ValueError(f"Unknown EXTERNAL_SOURCES entries: {', '.join(unknown)}")
        if self.external_call_timeout_seconds <= 0:
            raise ValueError("EXTERNAL_CALL_TIMEOUT_SECONDS must be > 0")
        if self.external_overall_deadline_seconds <= 0:
            raise ValueError("EXTERNAL_OVERALL_DEADLINE_SECONDS must be > 0")
        if self.external_max_results_per_source < 1:
            raise ValueError("EXTERNAL_MAX_RESULTS_PER_SOURCE must be >= 1")
        if self.breaker_failure_threshold < 1:
            raise ValueError("BREAKER_FAILURE_THRESHOLD must be >= 1")
        if self.breaker_open_seconds <= 0 or self.breaker_failure_window_seconds <= 0:
            raise ValueError("BREAKER_OPEN_SECONDS and BREAKER_FAILURE_WINDOW_SECONDS must be > 0")
        if self.rate_limit_capacity < 1:
            raise ValueError("RATE_LIMIT_CAPACITY must be >= 1")
        if self.rate_limit_refill_per_second <= 0:
            raise ValueError("RATE_LIMIT_REFILL_PER_SECOND must be > 0")
        if self.cache_ttl_seconds <= 0 or self.cache_sweep_seconds <= 0:
            raise ValueError("CACHE_TTL_SECONDS and CACHE_SWEEP_SECONDS must be > 0")
        if self.cache_max_entries < 1:
            raise ValueError("CACHE_MAX_ENTRIES must be >= 1")
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
