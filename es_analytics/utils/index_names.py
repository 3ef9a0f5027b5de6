"""
Daily index name generation.

Health-check documents are written to one index per UTC day
(``<prefix>-YYYY.MM.DD``). Searching a time window means listing every daily
index it overlaps.
"""

from datetime import UTC, datetime, timedelta

INDEX_DATE_FORMAT = "%Y.%m.%d"


def index_names_for_range(prefix: str, start_ms: int, end_ms: int) -> str:
    """
    Build the comma-separated index pattern covering ``[start_ms, end_ms]``.

    Args:
        prefix: Index name prefix (for example ``gravitee``)
        start_ms: Window start, epoch milliseconds
        end_ms: Window end, epoch milliseconds

    Returns:
        Comma-separated list of daily index names, oldest first
    """
    if end_ms < start_ms:
        raise ValueError("end_ms must not be before start_ms")

    day = datetime.fromtimestamp(start_ms / 1000, tz=UTC).date()
    last_day = datetime.fromtimestamp(end_ms / 1000, tz=UTC).date()

    names = []
    while day <= last_day:
        names.append(f"{prefix}-{day.strftime(INDEX_DATE_FORMAT)}")
        day += timedelta(days=1)

    return ",".join(names)
