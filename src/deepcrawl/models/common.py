"""Common Pydantic models and types used across the deepcrawl system."""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys (``pagesScraped``).

    Python code uses the snake_case attribute names; both forms are
    accepted on input.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-compatible dictionary with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class ErrorResponse(CamelModel):
    """Error body returned by the HTTP front-end."""

    error: str
    error_code: Optional[str] = None
    details: Optional[Any] = None


class HealthCheck(CamelModel):
    """Health check response."""

    status: str = "ok"
    timestamp: datetime = Field(default_factory=utcnow)


def check_http_url(value: str) -> str:
    """Pydantic validator body: require an absolute http(s) URL."""
    parts = urlsplit(value.strip())
    if parts.scheme.lower() not in ("http", "https") or not parts.netloc:
        raise ValueError("Invalid URL format")
    return value.strip()
