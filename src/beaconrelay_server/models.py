from __future__ import annotations

from pydantic import BaseModel
from typing import Optional


class ErrorOut(BaseModel):
    error: str
    status: Optional[int] = None

    def body(self) -> dict:
        return self.model_dump(exclude_none=True)
