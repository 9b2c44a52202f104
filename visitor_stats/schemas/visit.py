# Pydantic schemas

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime


class TrackVisitRequest(BaseModel):
    """Body of POST /track. sessionId is checked by the route so its absence is a 400."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str | None = Field(default=None, alias="sessionId", max_length=255)
    page_path: str | None = Field(default=None, alias="pagePath", max_length=500)

    @field_validator('session_id', 'page_path')
    @classmethod
    def strip_whitespace(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = v.strip()
        return v or None


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class StatsData(BaseModel):
    """Aggregate counters in the shape the site dashboard reads"""

    model_config = ConfigDict(populate_by_name=True)

    total_visits: int = Field(alias="totalVisits")
    unique_sessions: int = Field(alias="uniqueSessions")
    since: datetime
    last_updated: datetime = Field(alias="lastUpdated")


class StatsResponse(BaseModel):
    success: bool = True
    data: StatsData


class SessionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    session_id: str = Field(alias="sessionId")
