from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, Field

Level = Literal["beginner", "intermediate", "advanced"]


class Resource(BaseModel):
    title: str
    type: str
    url: str


class RoadmapPhase(BaseModel):
    title: str
    duration: str
    description: str
    topics: List[str] = Field(default_factory=list)
    resources: List[Resource] = Field(default_factory=list)
    milestones: List[str] = Field(default_factory=list)


class RoadmapGenerateRequest(BaseModel):
    user_id: int = Field(..., ge=1)
    target_role: str = Field(..., min_length=1, max_length=255)
    current_level: Level = "beginner"
    duration: str = Field(default="6 months", min_length=1, max_length=64)


class CreditAllocateRequest(BaseModel):
    credits_to_add: int = Field(..., ge=1)


class BulkAllocateRequest(BaseModel):
    user_ids: List[int] = Field(..., min_length=1)
    credits_to_add: int = Field(..., ge=1)
