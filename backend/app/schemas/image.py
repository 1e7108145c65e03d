from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from event_core import generate_event_track


class ImageRecordResponse(BaseModel):
    """Stored photo record."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner: str
    capture_time: Optional[datetime] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    content_type: Optional[str] = None
    size: int = 0


class EventResponse(BaseModel):
    """One event: photos taken during a single contiguous activity."""

    index: int
    start: datetime
    end: datetime
    photo_count: int
    track: Optional[List[List[float]]] = None
    photos: List[ImageRecordResponse]

    @classmethod
    def from_group(cls, index: int, group) -> "EventResponse":
        return cls(
            index=index,
            start=group[0].capture_time,
            end=group[-1].capture_time,
            photo_count=len(group),
            track=generate_event_track(group),
            photos=[ImageRecordResponse.model_validate(record) for record in group],
        )


class BatchUploadResponse(BaseModel):
    """Events of an uploaded batch, plus the photos that could not be dated."""

    events: List[EventResponse]
    unclustered: List[ImageRecordResponse] = []

    @classmethod
    def from_result(cls, result) -> "BatchUploadResponse":
        return cls(
            events=[EventResponse.from_group(i, group) for i, group in enumerate(result.events)],
            unclustered=[ImageRecordResponse.model_validate(record) for record in result.unclustered],
        )
