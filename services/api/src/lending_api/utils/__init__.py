"""Utility modules."""

from services.api.src.lending_api.utils.concurrency import Settled, gather_or_cancel, settle_all
from services.api.src.lending_api.utils.timestamps import elapsed_ms, now_ms

__all__ = [
    "Settled",
    "settle_all",
    "gather_or_cancel",
    "now_ms",
    "elapsed_ms",
]
