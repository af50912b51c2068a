from datetime import datetime
from typing import Literal, NamedTuple

from pydantic import BaseModel, ConfigDict, Field


class RepositoryRef(NamedTuple):
    owner: str
    name: str
    description: str | None
    updated_at: datetime


class RepositorySummary(NamedTuple):
    name: str
    description: str | None
    languages: tuple[str, ...]
    top_level_files: tuple[str, ...]
    updated_at: datetime
    frameworks: tuple[str, ...] = ()


class AnalysisContext(NamedTuple):
    subject_id: str
    summaries: tuple[RepositorySummary, ...]


class RoastRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subject_id: str = Field(alias="subjectId")


class StructuredResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    total_fomo_score: int = Field(alias="totalFomoScore", ge=0, le=100)
    roast: str
    skills_to_learn: str = Field(alias="skillsToLearn")
    summary: str


AnalysisResult = str | StructuredResult


class ErrorResponse(BaseModel):
    status: Literal["error"] = "error"
    code: str
    message: str
