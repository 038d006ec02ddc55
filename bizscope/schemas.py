"""Request and record schemas."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import AfterValidator, AnyUrl, BaseModel, Field, TypeAdapter, ValidationError

_URL_ADAPTER = TypeAdapter(AnyUrl)
_ISO_DATETIME_RE = re.compile(
    r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}(:\d{2}(\.\d+)?)?(Z|[+-]\d{2}:\d{2})?$"
)
_FRACTION_RE = re.compile(r"\.(\d+)")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class Platform(str, Enum):
    """Supported content sources."""

    TWITTER = "twitter"
    REDDIT = "reddit"
    HACKERNEWS = "hackernews"
    PRODUCTHUNT = "producthunt"


SUPPORTED_PLATFORMS = [platform.value for platform in Platform]


class ContentStatus(str, Enum):
    PENDING = "pending"
    ANALYZED = "analyzed"
    IGNORED = "ignored"
    DELETED = "deleted"


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO-8601 date-time string into an aware UTC datetime.

    Naive values are taken as UTC. Fractional seconds of any precision are
    accepted and truncated to microseconds.

    Raises:
        ValueError: If the value is not a full ISO-8601 date-time.
    """
    if not _ISO_DATETIME_RE.match(value):
        raise ValueError("must be an ISO-8601 date-time")
    normalized = _FRACTION_RE.sub(
        lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.replace("Z", "+00:00"), count=1
    )
    parsed = datetime.fromisoformat(normalized)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _check_iso_datetime(value: str) -> str:
    parse_iso_datetime(value)
    return value


def _check_url(value: str) -> str:
    try:
        _URL_ADAPTER.validate_python(value)
    except ValidationError:
        raise ValueError("must be a valid URL") from None
    return value


def _check_email(value: str) -> str:
    if not _EMAIL_RE.match(value):
        raise ValueError("must be a valid email address")
    return value


IsoDatetime = Annotated[str, AfterValidator(_check_iso_datetime)]
Url = Annotated[str, AfterValidator(_check_url)]
Email = Annotated[str, Field(max_length=254), AfterValidator(_check_email)]
Count = Annotated[int, Field(ge=0, strict=True)]


class WebhookItem(BaseModel):
    """One content item as pushed by a collector."""

    originalUrl: Optional[Url] = None
    title: Optional[str] = Field(default=None, max_length=500)
    content: Optional[str] = Field(default=None, max_length=10000)
    author: Optional[str] = Field(default=None, max_length=100)
    publishedAt: Optional[IsoDatetime] = None
    likesCount: Count = 0
    sharesCount: Count = 0
    commentsCount: Count = 0
    viewCount: Count = 0
    tags: Optional[str] = Field(default=None, max_length=1000)


class WebhookBatch(BaseModel):
    """Envelope of one ingestion request."""

    platform: Platform
    data: list[WebhookItem]
    source: Optional[str] = None
    timestamp: IsoDatetime


class RawContentRecord(BaseModel):
    """A normalized item ready for persistence.

    Optional fields are None when the collector did not provide them; they
    are never coerced to empty strings.
    """

    platform: Platform
    original_url: Optional[str] = None
    title: Optional[str] = None
    content: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    collected_at: datetime
    likes_count: int = 0
    shares_count: int = 0
    comments_count: int = 0
    view_count: int = 0
    tags: Optional[str] = None
    status: ContentStatus = ContentStatus.PENDING

    @property
    def has_content(self) -> bool:
        return bool(self.title) or bool(self.content)


class SignInCredentials(BaseModel):
    email: Email
    password: str = Field(min_length=6, max_length=50)


class RegistrationRequest(BaseModel):
    email: Email
    password: str = Field(min_length=6, max_length=50)
    name: Optional[str] = Field(default=None, max_length=50)


def format_validation_errors(exc: ValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic errors into JSON-safe field-level details."""
    return [
        {
            "path": [str(part) for part in error["loc"]],
            "message": error["msg"],
            "code": error["type"],
        }
        for error in exc.errors(include_url=False)
    ]
