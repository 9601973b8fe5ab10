from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SeasonUpsert(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    seasonName: str = Field(min_length=1, max_length=100)
    companyID: int = Field(gt=0)
    startMonth: int = Field(ge=1, le=12)
    startDay: int = Field(ge=1, le=31)
    endMonth: int = Field(ge=1, le=12)
    endDay: int = Field(ge=1, le=31)
    priceMultiplier: float = Field(default=1.0, ge=0.1, le=10)
    discountLabel: Optional[str] = Field(default=None, max_length=100)

    @field_validator("seasonName", mode="before")
    @classmethod
    def _strip_name(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("discountLabel", mode="before")
    @classmethod
    def _blank_label_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class SeasonRangeDto(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    startMonth: int
    startDay: int
    endMonth: int
    endDay: int


class SeasonCoverageRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    seasons: List[SeasonRangeDto] = []


class SeasonReplaceRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    seasons: List[SeasonUpsert] = []
