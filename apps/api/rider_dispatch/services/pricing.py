import math
from typing import Protocol

from rider_dispatch.config import settings
from rider_dispatch.models.domain import Location, Quote

_EARTH_RADIUS_KM = 6371.0


def distance_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance rounded to 0.1 km."""
    lat1_rad, lng1_rad, lat2_rad, lng2_rad = map(math.radians, [lat1, lng1, lat2, lng2])
    dlat = lat2_rad - lat1_rad
    dlng = lng2_rad - lng1_rad
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlng / 2) ** 2
    return round(_EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a)), 1)


class PricingPolicy(Protocol):
    def quote(self, pickup: Location, dropoff: Location) -> Quote: ...


class DistancePricingPolicy:
    def __init__(
        self,
        base_fee: float,
        per_km_rate: float,
        min_payment: float,
        rider_base_earning: float,
    ) -> None:
        self.base_fee = base_fee
        self.per_km_rate = per_km_rate
        self.min_payment = min_payment
        self.rider_base_earning = rider_base_earning

    def quote(self, pickup: Location, dropoff: Location) -> Quote:
        distance = distance_km(pickup.lat, pickup.lng, dropoff.lat, dropoff.lng)
        total = max(float(round(self.base_fee + distance * self.per_km_rate)), self.min_payment)
        rider_earning = float(round(self.rider_base_earning + distance * self.per_km_rate))
        commission = max(0.0, total - rider_earning)
        return Quote(
            distance_km=distance,
            total=total,
            rider_earning=rider_earning,
            commission=commission,
        )


def get_pricing_policy() -> PricingPolicy:
    return DistancePricingPolicy(
        base_fee=settings.pricing_base_fee,
        per_km_rate=settings.pricing_per_km_rate,
        min_payment=settings.pricing_min_payment,
        rider_base_earning=settings.pricing_rider_base_earning,
    )
