from datetime import date
from decimal import Decimal

from billing.models.enums import BillingStatus, ChargeType
from billing.services.billing_analytics_service import BillingAnalyticsService
from billing.services.billing_periods_service import BillingPeriodService
from billing.services.charges_service import ChargeService, OccupancyWindow

periods = BillingPeriodService()
charges = ChargeService()
analytics = BillingAnalyticsService()


def seed(db):
    jan = periods.create_period(db, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
    feb = periods.create_period(db, start_date=date(2024, 2, 1), end_date=date(2024, 2, 29))
    periods.transition(db, period_id=feb.id, to_status=BillingStatus.cancelled)

    charges.create_charge(
        db,
        billing_period_id=jan.id,
        staff_id="alice",
        charge_type=ChargeType.rent,
        amount=Decimal("100"),
        proration_factor=Decimal("0.5"),
        description="Room rent for Room 1",
    )
    charges.create_charge(
        db,
        billing_period_id=jan.id,
        staff_id="bob",
        charge_type=ChargeType.transport,
        amount=Decimal("50"),
        description="Shuttle",
    )
    charges.create_charge(
        db,
        billing_period_id=jan.id,
        staff_id="bob",
        charge_type=ChargeType.transport,
        amount=Decimal("25"),
        description="Shuttle",
    )
    return jan, feb


def test_empty_summary(db):
    s = analytics.billing_summary(db)
    assert s.total_billing_periods == 0
    assert s.total_charges == 0
    assert s.total_amount == Decimal("0")
    assert s.average_charge_amount == Decimal("0")
    assert all(t.count == 0 for t in s.charges_by_type.values())


def test_summary_uses_adjusted_amounts(db):
    seed(db)
    s = analytics.billing_summary(db)

    assert s.total_billing_periods == 2
    assert s.active_billing_periods == 1
    assert s.total_charges == 3
    assert s.total_amount == Decimal("125.00")
    assert s.average_charge_amount == Decimal("41.67")

    rent = s.charges_by_type[ChargeType.rent]
    transport = s.charges_by_type[ChargeType.transport]
    assert (rent.count, rent.amount, rent.percentage) == (1, Decimal("50.00"), Decimal("40.00"))
    assert (transport.count, transport.amount, transport.percentage) == (2, Decimal("75.00"), Decimal("60.00"))
    assert s.charges_by_type[ChargeType.utilities].count == 0


def test_summary_period_filter(db):
    seed(db)
    s = analytics.billing_summary(db, date_from=date(2024, 2, 1), date_to=date(2024, 2, 29))
    assert s.total_billing_periods == 1
    # charges are filtered on creation time, which is today
    assert s.total_charges == 0


def test_summary_with_sub_cent_total(db):
    jan = periods.create_period(db, start_date=date(2024, 1, 1), end_date=date(2024, 1, 31))
    # one night of a 10 cent rent: adjusted amount is a third of a cent
    charges.generate_rent_charges(
        db,
        billing_period_id=jan.id,
        occupancies=[OccupancyWindow("s", date(2024, 1, 30), None, Decimal("0.10"), "Cot", None)],
    )

    s = analytics.billing_summary(db)

    rent = s.charges_by_type[ChargeType.rent]
    assert s.total_amount == Decimal("0.00")
    assert (rent.count, rent.amount, rent.percentage) == (1, Decimal("0.00"), Decimal("100.00"))
    assert s.charges_by_type[ChargeType.transport].percentage == Decimal("0")


def test_staff_summaries_sorted_by_total(db):
    seed(db)
    rows = analytics.staff_summaries(db)

    assert [r.staff_id for r in rows] == ["bob", "alice"]
    bob = rows[0]
    assert bob.total_charges == 2
    assert bob.total_amount == Decimal("75.00")
    assert bob.by_type[ChargeType.transport] == Decimal("75.00")
    assert bob.by_type[ChargeType.rent] == Decimal("0.00")
    assert bob.average_monthly_amount == Decimal("75.00")
    assert bob.last_billing_date is not None


def test_staff_summaries_single_staff_over_months(db):
    seed(db)
    rows = analytics.staff_summaries(db, staff_id="alice", date_from=date(2000, 1, 1), date_to=date(2000, 3, 1))
    assert rows == []

    rows = analytics.staff_summaries(db, staff_id="alice")
    assert len(rows) == 1
    assert rows[0].total_amount == Decimal("50.00")
