"""Request bodies for the quote API."""

from datetime import date
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

from quote_types import RunOverrides


class QuoteRunRequest(BaseModel):
    """Body of POST /groups/{group_id}/quotes. Every field is optional."""

    effective_date: Optional[date] = Field(default=None, description="Coverage effective date (defaults to today)")
    tobacco: Optional[bool] = Field(default=None, description="Tobacco rating for every member; omit to use each member's flag")
    county_id: Optional[str] = Field(default=None, description="County for every member whose ZIP has counties; a member_counties choice wins")
    member_counties: Dict[str, str] = Field(default_factory=dict, description="member_id -> chosen county_id")

    @field_validator('county_id', mode='before')
    @classmethod
    def _county_as_text(cls, value):
        if value is None or value == '':
            return None
        return str(value)

    @field_validator('member_counties', mode='before')
    @classmethod
    def _member_counties_as_text(cls, value):
        if not value:
            return {}
        return {str(k): str(v) for k, v in dict(value).items() if v not in (None, '')}

    def to_overrides(self) -> RunOverrides:
        return RunOverrides(
            effective_date=self.effective_date,
            tobacco=self.tobacco,
            county_id=self.county_id,
            member_counties=dict(self.member_counties),
        )


class PreviewRequest(BaseModel):
    """Body of POST /groups/{group_id}/quotes/preview."""

    member_id: str
    county_id: str
    effective_date: Optional[date] = None
    tobacco: Optional[bool] = None

    @field_validator('member_id', 'county_id', mode='before')
    @classmethod
    def _as_text(cls, value):
        return None if value is None else str(value)


class BenchmarkRequest(PreviewRequest):
    """Body of POST /groups/{group_id}/quotes/benchmark."""

    state_code: Optional[str] = Field(default=None, min_length=2, max_length=2)
