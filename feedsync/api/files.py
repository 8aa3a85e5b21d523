"""
Public feed file endpoint.
"""

import logging
from pathlib import Path
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import FileResponse

from feedsync.deps import get_product_sync
from feedsync.core.feed.sync import ProductSync

router = APIRouter(tags=["feeds"])

logger = logging.getLogger(__name__)


@router.get("/feeds/{filename}")
async def download_feed_file(filename: str, sync: ProductSync = Depends(get_product_sync)):
    """
    Serve the promoted feed file of the current job, or the one of the
    abandoned attempt while it is still registered.
    Temporary files are never served.
    """
    state = await sync.state.read()

    path = None
    for candidate in (state.output_path, state.previous_output_path):
        if candidate and Path(candidate).name == filename:
            path = candidate
            break

    if path is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Feed file not found"
        )

    if not Path(path).exists():
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Feed file not found. Feed may not be generated yet."
        )

    return FileResponse(
        path=path,
        filename=filename,
        media_type="application/xml"
    )
