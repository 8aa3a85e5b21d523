"""
Feed sync schemas.
"""

from pydantic import BaseModel
from typing import Optional


class FeedStatusResponse(BaseModel):
    """Current feed job state."""
    status: str
    job_id: Optional[str] = None
    public_url: Optional[str] = None
    progress: str = ""
    written: int = 0
    products_count: Optional[int] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    last_activity_at: Optional[float] = None
    registered_feed_id: Optional[str] = None
    dirty: bool = False


class FeedActionResponse(BaseModel):
    """Result of a feed action."""
    ok: bool = True
    status: str
    message: Optional[str] = None


class WebhookResponse(BaseModel):
    """Webhook acknowledgement."""
    ok: bool = True
    marked_dirty: bool = False
