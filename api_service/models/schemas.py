from __future__ import annotations

from typing import Literal

from pydantic import BaseModel


class DataResponse(BaseModel):
    success: Literal[True] = True


class ErrorResponse(BaseModel):
    error: str
