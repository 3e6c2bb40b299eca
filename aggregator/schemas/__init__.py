"""
Pageview Aggregator — Pydantic request/response schemas.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class AggregationResult(BaseModel):
    """Outcome of one aggregation run for one domain."""

    domain: str
    snapshot: bool = Field(False, description="A buffer snapshot was rotated and read")
    committed: bool = Field(False, description="Statistics were written")
    pageviews: int = 0
    visitors: int = 0
    pages: int = Field(0, description="Distinct page paths")
    referrers: int = Field(0, description="Distinct referrer URLs")
    blocked: int = Field(0, description="Records dropped by the referrer blocklist")
    skipped: int = Field(0, description="Malformed records skipped")


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    version: str


class DomainKnownResponse(BaseModel):
    domain: str
    known: bool


class RealtimeResponse(BaseModel):
    domain: str
    pageviews: int
    since: datetime
