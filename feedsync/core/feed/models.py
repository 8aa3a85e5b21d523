"""
Feed data models.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Optional, List, Dict, Any


class FeedStatus(str, Enum):
    """Status of the feed generation job."""
    UNCONFIGURED = "unconfigured"  # no job ever run
    PENDING_CONFIG = "pending_config"  # feed was reset
    SCHEDULED_FOR_GENERATION = "scheduled_for_generation"
    STARTING = "starting"
    IN_PROGRESS = "in_progress"
    GENERATED = "generated"
    ERROR = "error"


class FeedJobEvent(str, Enum):
    """Events accepted by FeedJobStateManager.transition()."""
    START = "start"
    CHECK_REGISTRATION = "check_registration"
    PROGRESS = "progress"
    GENERATED = "generated"
    ERROR = "error"
    RESCHEDULE = "reschedule"
    RESTART = "restart"


class FeedGenerationError(Exception):
    """A slice could not complete. Fatal for the current attempt."""

    IO = "io"
    INCONSISTENT_STATE = "inconsistent_state"
    CATALOG = "catalog"
    UNEXPECTED = "unexpected"

    def __init__(self, message: str, category: str = IO):
        super().__init__(message)
        self.category = category


class RegistrationError(Exception):
    """The registration service rejected or failed a request."""
    pass


@dataclass
class FeedJobState:
    """
    Persisted record of the current (or most recent) generation attempt.

    Paths and URL are derived from job_id; dataset and cursor live in
    separate store keys because the dataset can be large.
    """
    status: FeedStatus = FeedStatus.UNCONFIGURED
    job_id: Optional[str] = None
    dataset_cursor: Optional[int] = None
    output_path: Optional[str] = None
    temp_path: Optional[str] = None
    public_url: Optional[str] = None
    started_at: Optional[float] = None
    finished_at: Optional[float] = None
    last_activity_at: Optional[float] = None
    progress: str = ""
    written: int = 0
    products_count: Optional[int] = None
    bytes_written: int = 0
    previous_output_path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FeedJobState":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        known["status"] = FeedStatus(known.get("status") or FeedStatus.UNCONFIGURED.value)
        return cls(**known)


@dataclass
class FeedArgs:
    """Desired registration configuration for the generated feed."""
    feed_location: str
    feed_format: str = "XML"
    feed_default_currency: str = "USD"
    default_availability_type: str = "IN_STOCK"
    country: str = "US"
    locale: str = "en-US"

    def to_payload(self, include_country_locale: bool = True) -> Dict[str, str]:
        """Request payload; country and locale cannot be sent on update."""
        payload = asdict(self)
        if not include_country_locale:
            payload.pop("country")
            payload.pop("locale")
        return payload


@dataclass
class CatalogEntry:
    """A product as listed by the catalog, with what is needed to build the dataset."""
    id: int
    type: str = "simple"
    catalog_visibility: str = "visible"
    stock_status: str = "instock"
    children: List[int] = field(default_factory=list)


@dataclass
class FeedItem:
    """Normalized feed item data structure."""
    id: str  # Product ID or variation ID
    item_group_id: Optional[str] = None  # Parent product ID for variations

    title: str = ''
    description: str = ''
    link: str = ''
    image_link: str = ''
    additional_images: List[str] = None

    price: float = 0.0
    sale_price: Optional[float] = None

    availability: str = 'in stock'
    product_type: str = ''

    def __post_init__(self):
        if self.additional_images is None:
            self.additional_images = []


@dataclass
class SliceContext:
    """
    Transient counters of one slice.

    Created fresh by every invocation and returned with the result, so nothing
    about an in-flight slice lives in module or class state.
    """
    current_index: int = 0
    step_index: int = 0
    buffer: List[str] = field(default_factory=list)
    bytes_written: int = 0
    # Last parent product serialized in this slice, keyed by id
    parents: Dict[int, Dict[str, Any]] = field(default_factory=dict)

    @property
    def buffer_size(self) -> int:
        return len(self.buffer)


class StepOutcome(str, Enum):
    CONTINUED = "continued"  # more products left, next slice enqueued
    GENERATED = "generated"
    EMPTY = "empty"  # no products, nothing written
    SKIPPED = "skipped"  # nothing to do for the current status
    FAILED = "failed"


@dataclass
class StepResult:
    """Outcome of one slice; failures carry their category and message."""
    outcome: StepOutcome
    context: Optional[SliceContext] = None
    error_category: Optional[str] = None
    message: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome == StepOutcome.FAILED

    @classmethod
    def failure(cls, error: Exception, context: Optional[SliceContext] = None) -> "StepResult":
        category = getattr(error, "category", FeedGenerationError.UNEXPECTED)
        return cls(StepOutcome.FAILED, context=context, error_category=category, message=str(error))
