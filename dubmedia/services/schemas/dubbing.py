# services/schemas/dubbing.py
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateDubbingResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    dubbing_id: str
    expected_duration_sec: Optional[float] = None


class DubbingJobSchema(BaseModel):
    model_config = ConfigDict(extra="ignore")

    dubbing_id: str
    name: Optional[str] = None
    status: str = Field(..., examples=["dubbing", "dubbed", "failed"])
    target_languages: Optional[List[str]] = None  # may arrive as null
    error: Optional[str] = None
    expected_duration_sec: Optional[float] = None


class ErrorDetail(BaseModel):
    model_config = ConfigDict(extra="ignore")

    status: Optional[str] = None
    message: Optional[str] = None


class ErrorEnvelope(BaseModel):
    model_config = ConfigDict(extra="ignore")

    detail: Optional[ErrorDetail] = None

    @property
    def message(self) -> Optional[str]:
        if self.detail and self.detail.message:
            return self.detail.message
        return None
