"""Import API routes."""

from __future__ import annotations

import logging
from typing import Callable

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from app.common.store import RecordStore, get_store_factory
from app.core.config import settings
from app.core.errors import PayloadTooLargeError
from app.imports.contracts import CollectionSchema, get_collection
from app.imports.schemas import ImportResult
from app.imports.service import ImportService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["imports"])


@router.post(
    "/upload/{collection}",
    response_model=ImportResult,
    responses={status.HTTP_400_BAD_REQUEST: {"model": ImportResult}},
)
async def upload_file(
    collection: str,
    file: UploadFile = File(...),
    store_factory: Callable[[CollectionSchema], RecordStore] = Depends(get_store_factory),
):
    """Upload a spreadsheet and import its rows into a collection."""
    schema = get_collection(collection)

    file_content = await file.read()
    if len(file_content) > settings.max_upload_bytes:
        raise PayloadTooLargeError(len(file_content), settings.max_upload_bytes)

    filename = file.filename or "uploaded_file"
    logger.info(f"Received {filename} ({len(file_content)} bytes) for {collection}")

    service = ImportService(store_factory(schema))
    # Parsing and store calls are blocking; keep them off the event loop
    result = await run_in_threadpool(
        service.import_file, file_content, filename, collection
    )

    if not result.success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=result.model_dump(),
        )
    return result
