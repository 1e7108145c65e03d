import logging
import statistics
from operator import attrgetter
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_GAP_SIGMA = 3.0

T = TypeVar("T")

_capture_time = attrgetter("capture_time")


def split_undated(
    records: Sequence[T],
    time_key: Callable[[T], Any] = _capture_time,
) -> Tuple[List[T], List[T]]:
    """Separate records that can be ordered in time from those that cannot.

    Order is preserved within both lists.
    """
    dated: List[T] = []
    undated: List[T] = []
    for record in records:
        if time_key(record) is None:
            undated.append(record)
        else:
            dated.append(record)
    return dated, undated


def cluster_into_events(
    records: Sequence[T],
    sigma: float = DEFAULT_GAP_SIGMA,
    time_key: Callable[[T], Any] = _capture_time,
) -> List[List[T]]:
    """
    Partitions photo records into events using statistical gap detection.

    Records are sorted by capture time and the gaps between consecutive
    photos are measured. A gap at least ``sigma`` sample standard deviations
    wide starts a new event, so the threshold adapts to the pacing of each
    batch instead of relying on a fixed duration. When every gap is equal
    (standard deviation 0, which includes batches with a single gap) the
    batch is never split.

    Args:
        records: Non-empty sequence of records, each with a capture time.
        sigma: Multiple of the standard deviation a gap must reach to split.
        time_key: Returns the capture time (datetime or number) of a record.

    Returns:
        Ordered list of events; concatenated, they reproduce the sorted input.

    Raises:
        ValueError: If ``records`` is empty or any record has no capture time.
    """
    if not records:
        raise ValueError("cannot cluster an empty batch")
    if any(time_key(record) is None for record in records):
        raise ValueError("every record must have a capture time; use split_undated first")

    # sorted() is stable, so photos sharing a timestamp keep their input order
    ordered = sorted(records, key=time_key)
    if len(ordered) < 2:
        return [ordered]

    differences = [
        _seconds_between(time_key(prev), time_key(nxt))
        for prev, nxt in zip(ordered, ordered[1:])
    ]
    mean = statistics.fmean(differences)
    deviation = statistics.stdev(differences) if len(differences) > 1 else 0.0
    threshold = sigma * deviation

    if deviation == 0:
        logger.debug(f"Uniform spacing across {len(ordered)} photos, keeping one event")
        return [ordered]

    events: List[List[T]] = [[ordered[0]]]
    for difference, nxt in zip(differences, ordered[1:]):
        if difference >= threshold:
            events.append([nxt])
        else:
            events[-1].append(nxt)

    logger.info(
        f"Clustered {len(ordered)} photos into {len(events)} events "
        f"(mean gap {mean:.1f}s, threshold {threshold:.1f}s)"
    )
    return events


def _seconds_between(earlier: Any, later: Any) -> float:
    delta = later - earlier
    if hasattr(delta, "total_seconds"):
        return delta.total_seconds()
    return float(delta)


def generate_event_track(records: Sequence[Any]) -> Optional[List[List[float]]]:
    """
    Generates a GPS track (list of [lat, lon] coordinates) for an event.

    Args:
        records: Records from the same event, sorted by capture time.

    Returns:
        A list of [latitude, longitude] coordinates, or None if no GPS data.
    """
    track_points = []

    for record in records:
        lat = getattr(record, "latitude", None)
        lon = getattr(record, "longitude", None)

        if lat is not None and lon is not None:
            track_points.append([float(lat), float(lon)])

    return track_points if track_points else None
