"""
Pure calculations shared by the booking, trip and payment engines.
"""
import math
from datetime import datetime, timedelta
from typing import Iterable, Tuple

EARTH_RADIUS_KM = 6371
MS_PER_MINUTE = 60 * 1000
MS_PER_HOUR = 60 * MS_PER_MINUTE


def _elapsed_ms(start: datetime, end: datetime) -> int:
    return (end - start) // timedelta(milliseconds=1)


def windows_overlap(
    new_start: datetime,
    new_end: datetime,
    existing_start: datetime,
    existing_end: datetime,
) -> bool:
    """
    Three-clause overlap test for half-open windows [start, end).

    Mirrors the SQL predicate in db_operations.overlap_clause so in-memory
    checks and database scans agree on the boundaries.
    """
    # Existing booking starts inside the new window
    if new_start <= existing_start < new_end:
        return True
    # Existing booking ends inside the new window
    if new_start < existing_end <= new_end:
        return True
    # Existing booking covers the whole new window
    return existing_start <= new_start and new_end <= existing_end


def calculate_total_price(
    start_time: datetime,
    end_time: datetime,
    price_per_hour: float,
    price_per_day: float,
) -> float:
    """
    Rental price for a window.

    Windows of 24 hours or more are charged per started day, shorter ones
    per started hour.
    """
    duration_hours = _elapsed_ms(start_time, end_time) / MS_PER_HOUR
    duration_days = duration_hours / 24

    if duration_days >= 1:
        return math.ceil(duration_days) * price_per_day

    return math.ceil(duration_hours) * price_per_hour


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km between two coordinates (haversine)."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)

    a = (
        math.sin(d_lat / 2) * math.sin(d_lat / 2)
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(d_lon / 2)
        * math.sin(d_lon / 2)
    )

    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def trip_duration_minutes(started_at: datetime, ended_at: datetime) -> int:
    return math.floor(_elapsed_ms(started_at, ended_at) / MS_PER_MINUTE)


def calculate_fee_split(total_price: float, deposit: float, fee_rate: float) -> Tuple[float, float, float]:
    """Return (amount, platform_fee, owner_amount) for a booking payment."""
    amount = total_price + deposit
    platform_fee = amount * fee_rate
    owner_amount = amount - platform_fee
    return amount, platform_fee, owner_amount


def average_rating(ratings: Iterable[int]) -> Tuple[float, int]:
    """Return (average, count); an empty history averages to 0."""
    ratings = list(ratings)
    if not ratings:
        return 0.0, 0
    return sum(ratings) / len(ratings), len(ratings)
