"""Run configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from flowprobe.utils.validation import validate_max_pages, validate_url


class Credentials(BaseModel):
    email: str
    password: str


class ScanConfig(BaseModel):
    url: str
    max_pages: int = 50
    max_concurrency: int = Field(default=3, ge=1, le=10)
    exclude_patterns: list[str] = []
    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    credentials: Credentials | None = None
    hints: list[str] = []
    discover_spa_routes: bool = True
    max_page_retries: int = Field(default=1, ge=0, le=5)
    session_id: str | None = None

    @field_validator("url", mode="before")
    @classmethod
    def _check_url(cls, v: str) -> str:
        v = str(v).strip()
        if v and "://" not in v:
            v = f"https://{v}"
        # ValidationError subclasses ValueError, so pydantic reports it as a field error
        return validate_url(v)

    @field_validator("max_pages", mode="before")
    @classmethod
    def _clamp_max_pages(cls, v) -> int:
        return validate_max_pages(v)
