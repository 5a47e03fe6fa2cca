"""
TIME INFORMATION UTILITY
========================

Returns the current time as an ISO-8601 UTC string. Used by the health check
so the frontend can tell a live reply from a cached one.
"""

import datetime


def get_timestamp() -> str:
    """Current UTC time, e.g. 2026-02-05T14:03:07.123456+00:00."""
    return datetime.datetime.now(datetime.timezone.utc).isoformat()
