import uuid
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel

MAX_NAME_LENGTH = 50

_http_url = TypeAdapter(HttpUrl)


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CheckResult(CamelModel):
    """The outcome of one timed GET against a URL. Never mutated after creation."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str = Field(default_factory=new_id)
    url: str
    status: Literal["online", "offline"]
    status_code: Optional[int] = None
    load_time: int
    content_length: Optional[int] = None
    error: Optional[str] = None
    timestamp: str = Field(default_factory=utcnow_iso)
    performance_score: int = Field(ge=0, le=100)
    ttfb: Optional[int] = None


class MonitoredWebsite(CamelModel):
    id: str = Field(default_factory=new_id)
    url: str
    name: str
    status: Literal["online", "offline", "checking"] = "checking"
    last_check: Optional[CheckResult] = None
    check_history: List[CheckResult] = Field(default_factory=list)
    added_at: str = Field(default_factory=utcnow_iso)


class User(CamelModel):
    id: str = Field(default_factory=new_id)
    username: str
    password: str


class HistorySummary(CamelModel):
    count: int
    avg_load_time: int
    avg_score: int
    uptime: int
    grade: str
    label: str


def validate_url(value: str) -> str:
    # the submitted string is kept as-is so history filters match it exactly
    if not value:
        raise ValueError("URL is required")
    try:
        _http_url.validate_python(value)
    except ValidationError:
        raise ValueError("Please enter a valid URL") from None
    return value


class CheckRequest(BaseModel):
    url: str = Field(default="", validate_default=True)

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        return validate_url(v)


class AddWebsiteRequest(BaseModel):
    url: str = Field(default="", validate_default=True)
    name: str = Field(default="", validate_default=True)

    @field_validator("url")
    @classmethod
    def check_url(cls, v: str) -> str:
        return validate_url(v)

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        if not v:
            raise ValueError("Name is required")
        if len(v) > MAX_NAME_LENGTH:
            raise ValueError("Name too long")
        return v
