"""Unit tests for the fare engine."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from src.domain.enums import DiscountType
from src.domain.errors import ValidationError
from src.domain.pricing import (
    ConcessionDiscount,
    FareEngine,
    NoDiscount,
    ZoneRate,
    fare,
    is_night_trip,
    select_discount,
)

LOPEZ = ZoneRate.of("Lopez", 25, 12.5, 25, 5)


class TestDiscountStrategies:
    def test_no_discount(self):
        assert NoDiscount().discount(Decimal("100")) == Decimal("0")

    def test_concession_is_twenty_percent(self):
        strategy = ConcessionDiscount(DiscountType.SENIOR)
        assert strategy.discount(Decimal("100")) == Decimal("20")

    def test_senior_takes_precedence_over_pwd(self):
        assert select_discount(True, True).discount_type is DiscountType.SENIOR

    def test_pwd_only(self):
        assert select_discount(False, True).discount_type is DiscountType.PWD


class TestFare:
    def test_five_km_daytime_band(self):
        quote = fare(5, LOPEZ)
        # 25 + 5 * 12.5 = 87.50 -> 83.125 .. 91.875
        assert quote.base == Decimal("87.50")
        assert quote.min == Decimal("83")
        assert quote.max == Decimal("92")
        assert quote.discount_type is DiscountType.NONE

    def test_five_km_is_reproducible(self):
        assert fare(5, LOPEZ) == fare(5, LOPEZ) == fare(5.0, LOPEZ)

    def test_min_not_above_max_and_positive(self):
        for d in (0.01, 0.3, 1, 2.7, 7.5, 15, 42.195):
            quote = fare(d, LOPEZ)
            assert 0 < quote.min <= quote.max

    @pytest.mark.parametrize(
        "modifiers",
        [{}, {"is_night_trip": True}, {"is_errand": True, "is_pwd_discount": True}],
    )
    def test_monotonic_in_distance(self, modifiers):
        quotes = [fare(tenth / 10, LOPEZ, **modifiers) for tenth in range(300)]
        for shorter, longer in zip(quotes, quotes[1:]):
            assert longer.min >= shorter.min
            assert longer.max >= shorter.max

    def test_zero_distance_floors_at_minimum_fare(self):
        quote = fare(0, LOPEZ)
        assert quote.min == Decimal("25")
        assert quote.max == Decimal("26")

    def test_floor_never_below_one(self):
        free = ZoneRate.of("Free", 0, 0, 0, 0)
        quote = fare(0, free)
        assert quote.min == Decimal("1")
        assert quote.max == Decimal("1")

    def test_night_surcharge_added(self):
        day = fare(5, LOPEZ)
        night = fare(5, LOPEZ, is_night_trip=True)
        assert night.base == day.base + Decimal("5")

    def test_errand_surcharge_before_discount(self):
        quote = fare(5, LOPEZ, is_errand=True, is_senior_discount=True)
        # 87.50 * 1.2 = 105.00, 20% of that = 21.00
        assert quote.base == Decimal("105.00")
        assert quote.discount_amount == Decimal("21.00")
        assert quote.net == Decimal("84.00")
        assert quote.min == Decimal("80")
        assert quote.max == Decimal("88")

    def test_negative_distance_rejected(self):
        with pytest.raises(ValidationError):
            fare(-0.1, LOPEZ)

    def test_nan_distance_rejected(self):
        with pytest.raises(ValidationError):
            fare(float("nan"), LOPEZ)

    @pytest.mark.parametrize("distance", [float("inf"), 1e30, 1000.1])
    def test_unbounded_distance_rejected(self, distance):
        with pytest.raises(ValidationError):
            fare(distance, LOPEZ)

    def test_longest_quotable_trip(self):
        quote = fare(1000, LOPEZ)
        # 25 + 1000 x 12.50
        assert quote.base == Decimal("12525.00")


class TestNightWindow:
    @pytest.mark.parametrize(
        "utc_hour, expected",
        [
            (13, False),  # 21:00 Manila
            (14, True),  # 22:00 Manila
            (20, True),  # 04:00 Manila
            (21, False),  # 05:00 Manila
            (2, False),  # 10:00 Manila
        ],
    )
    def test_manila_night_hours(self, utc_hour, expected):
        at = datetime(2026, 3, 2, utc_hour, 0, tzinfo=timezone.utc)
        assert is_night_trip(at) is expected


class TestFareEngine:
    def test_quote_applies_night_surcharge_from_clock(self):
        engine = FareEngine(LOPEZ)
        night = engine.quote(5, at=datetime(2026, 3, 2, 15, 0, tzinfo=timezone.utc))
        day = engine.quote(5, at=datetime(2026, 3, 2, 3, 0, tzinfo=timezone.utc))
        assert night.base - day.base == Decimal("5")

    def test_quote_uses_given_zone(self):
        engine = FareEngine(LOPEZ)
        pricey = ZoneRate.of("Guinayangan", 30, 15, 30, 0)
        at = datetime(2026, 3, 2, 3, 0, tzinfo=timezone.utc)
        assert engine.quote(2, at=at, zone_rate=pricey).base == Decimal("60.00")
