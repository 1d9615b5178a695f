from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from .rules import SOURCE_ENCODING


class OverflowPolicy(str, Enum):
    """What to do with a data row that has more fields than the header."""

    strict = "strict"
    skip = "skip"
    ignore = "ignore"


class ConvertOptions(BaseModel):
    overflow: OverflowPolicy = OverflowPolicy.skip
    truncate: bool = False
    collect: bool = False
    encoding: str = Field(default=SOURCE_ENCODING)


class ReportItem(BaseModel):
    row: Optional[int] = None
    column: Optional[str] = None
    issue: str
    value: Optional[str] = None
    action: str


class ReportSummary(BaseModel):
    rows: int = 0
    columns: int = 0
    records: int = 0
    warnings: int = 0
    errors: int = 0


class ConvertReport(BaseModel):
    summary: ReportSummary = Field(default_factory=ReportSummary)
    key_names: List[str] = Field(default_factory=list)
    destination: Optional[str] = None
    warnings: List[ReportItem] = Field(default_factory=list)
    errors: List[ReportItem] = Field(default_factory=list)


class NdjsonOutput(BaseModel):
    sha256: str
    encoding: str = Field(default="utf-8")
    records: int = 0
    content: str


class ConvertResponse(BaseModel):
    ndjson: NdjsonOutput
    report: ConvertReport
    collection: Optional[List[Dict[str, Any]]] = None

class HealthResponse(BaseModel):
    ok: bool = True
