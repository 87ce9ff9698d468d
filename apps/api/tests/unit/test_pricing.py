import pytest

from rider_dispatch.config import settings
from rider_dispatch.models.domain import Location
from rider_dispatch.services.pricing import (
    DistancePricingPolicy,
    distance_km,
    get_pricing_policy,
)


def _policy(rider_base_earning: float = 50) -> DistancePricingPolicy:
    return DistancePricingPolicy(
        base_fee=80, per_km_rate=30, min_payment=100, rider_base_earning=rider_base_earning
    )


def test_distance_is_rounded_to_one_decimal():
    assert distance_km(0.0, 0.0, 0.0, 1.0) == 111.2
    assert distance_km(6.5244, 3.3792, 6.5244, 3.3792) == 0.0


def test_quote_uses_base_fee_and_per_km_rate():
    policy = _policy()

    quote = policy.quote(Location(lat=0.0, lng=0.0), Location(lat=0.0, lng=1.0))

    assert quote.distance_km == 111.2
    assert quote.total == 3416
    assert quote.rider_earning == 3386
    assert quote.commission == 30


def test_short_trip_is_charged_the_minimum_payment():
    policy = _policy()
    here = Location(lat=6.5244, lng=3.3792)

    quote = policy.quote(here, here)

    assert quote.total == 100
    assert quote.rider_earning == 50
    assert quote.commission == 50


def test_commission_is_never_negative():
    policy = _policy(rider_base_earning=150)
    here = Location(lat=6.5244, lng=3.3792)

    quote = policy.quote(here, here)

    assert quote.rider_earning == 150
    assert quote.commission == 0


def test_pricing_policy_reads_settings(monkeypatch):
    monkeypatch.setattr(settings, "pricing_min_payment", 250.0)
    here = Location(lat=6.5244, lng=3.3792)

    assert get_pricing_policy().quote(here, here).total == pytest.approx(250.0)
