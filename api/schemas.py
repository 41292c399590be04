"""
Pydantic schemas for the HTTP API.
"""
from typing import Literal, Optional

from pydantic import BaseModel, Field

from models.campaign import CampaignRequest


class GenerateCampaignRequest(CampaignRequest):
    """
    Body of POST /api/generate-campaign/stream.
    Accepts camelCase (`campaignId`) or snake_case keys.
    """
    domain: str = Field(..., min_length=1, max_length=253, description="Company domain or URL")
    campaign_id: Optional[str] = Field(None, description="Placeholder campaign record to update")
    slug: Optional[str] = Field(None, description="Explicit campaign slug; derived from the domain when omitted")


class HealthResponse(BaseModel):
    status: Literal["healthy"] = "healthy"
    version: str
    active_runs: int = Field(0, ge=0, description="Runs currently in flight")
