from typing import Optional

from fastapi import FastAPI, UploadFile, File, HTTPException, Query
from .models import ConvertResponse, HealthResponse, OverflowPolicy
from .config import get_settings
from .convert import RowTooLongError, convert_bytes

app = FastAPI(
    title="csv2ndjson",
    description="Stream CSV rows into NDJSON records with content-derived identifiers",
    version="0.1.0",
)

@app.get("/health", response_model=HealthResponse)
def health():
    return {"ok": True}

@app.post("/convert", response_model=ConvertResponse)
async def convert_csv(
    file: UploadFile = File(...),
    overflow: Optional[OverflowPolicy] = Query(default=None),
    collect: Optional[bool] = Query(default=None),
):
    if not file.filename.lower().endswith(".csv"):
        raise HTTPException(status_code=422, detail="Only CSV files are supported")

    options = get_settings().options(overflow=overflow, collect=collect)
    raw = await file.read()
    try:
        return await convert_bytes(raw, options)
    except RowTooLongError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
