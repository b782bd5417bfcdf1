"""
Pageview and statistics models and schemas
"""
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

DIRECT_REFERRER = "Direct / None"


class Table(str, Enum):
    """Aggregation tables, one per dimension"""

    PAGES = "pages"
    COUNTRIES = "countries"
    SOURCES = "sources"


class DimensionKey(BaseModel):
    """Unique key of an aggregation row within a table"""

    domain: str
    dimension_value: str
    day: date

    class Config:
        frozen = True


class PageviewEvent(BaseModel):
    """Beacon as handed over by the request-handling layer"""

    url: Optional[str] = None
    user_agent: str = ""
    referrer: Optional[str] = None
    client_ip: str = ""
    proxy_ip_hint: Optional[str] = None
    country_hint: Optional[str] = None

    @field_validator("url", "referrer", "proxy_ip_hint", "country_hint", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        """Treat empty strings as absent"""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com/pricing",
                "user_agent": "Mozilla/5.0 (X11; Linux x86_64) Firefox/131.0",
                "referrer": "https://news.ycombinator.com/",
                "client_ip": "203.0.113.7",
                "proxy_ip_hint": None,
                "country_hint": "FR",
            }
        }


class IngestStatus(str, Enum):
    """Outcome of a beacon"""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    FAILED = "failed"


class IngestResult(BaseModel):
    """Beacon ingestion response"""

    status: IngestStatus
    discarded: bool = False
    recorded: List[Table] = Field(default_factory=list)
    failed: List[Table] = Field(default_factory=list)
    message: Optional[str] = None


class StatsQuery(BaseModel):
    """Statistics query parameters"""

    table: Table = Table.PAGES
    domain: str = Field(..., min_length=1)
    start_day: Optional[date] = None
    end_day: Optional[date] = None
    aggregate: bool = False


class StatRow(BaseModel):
    """One day of visitors, for one dimension value or a whole domain"""

    dimension_value: Optional[str] = None
    day: date
    visitors: int = Field(..., ge=0)


class StatsResponse(BaseModel):
    """Statistics query response"""

    domain: str
    table: Table
    start_day: date
    end_day: date
    aggregate: bool
    rows: List[StatRow]
    accuracy: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
