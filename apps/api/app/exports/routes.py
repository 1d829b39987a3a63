"""Export API routes."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from starlette.concurrency import run_in_threadpool

from app.common.store import RecordStore, get_store_factory
from app.exports.service import XLSX_MEDIA_TYPE, ExportService, export_filename
from app.imports.contracts import CollectionSchema, get_collection

router = APIRouter(tags=["exports"])


@router.get("/download/{collection}")
async def download_collection(
    collection: str,
    classes: Optional[str] = Query(
        default=None, description="Comma-separated class filter, e.g. 1A,2B"
    ),
    store_factory: Callable[[CollectionSchema], RecordStore] = Depends(get_store_factory),
):
    """Download every record of a collection as an Excel workbook."""
    schema = get_collection(collection)
    class_filter = [value.strip() for value in classes.split(",")] if classes else None

    service = ExportService(store_factory(schema))
    content = await run_in_threadpool(
        service.export_collection, collection, classes=class_filter
    )
    filename = export_filename(collection, datetime.now(timezone.utc).date())
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
