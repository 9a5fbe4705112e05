from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from salesops.insights.cross_sell import generate_cross_sell_suggestions, primary_category
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import CustomerHistory, CustomerRecord, InvoiceRecord
from salesops.insights.upsell import (
    UpsellSignals,
    choose_play,
    derive_upsell_opportunity,
    purchase_growth_rate,
    rank_upsell_opportunities,
)


TODAY = date(2024, 6, 30)
POLICY = InsightsPolicy()


def _invoices(card_code: str, days_ago: list[int], totals: list[str]) -> list[InvoiceRecord]:
    return [
        InvoiceRecord(
            doc_entry=idx + 1,
            doc_num=idx + 1,
            card_code=card_code,
            card_name=card_code,
            doc_date=TODAY - timedelta(days=days),
            doc_total=Decimal(total),
        )
        for idx, (days, total) in enumerate(zip(days_ago, totals))
    ]


def _signals(**overrides) -> UpsellSignals:
    values = {
        "invoice_count": 4,
        "avg_order_value": Decimal("500"),
        "avg_days_between_orders": 30.0,
        "days_since_last_order": 5,
        "is_due_for_order": False,
        "purchase_growth_rate": 0.0,
    }
    values.update(overrides)
    return UpsellSignals(**values)


def test_growth_expansion_overrides_premium_upsell() -> None:
    play = choose_play(_signals(avg_order_value=Decimal("6000"), purchase_growth_rate=25.0), POLICY)
    assert play.type == "Growth Account Expansion"
    assert play.multiplier == Decimal("2")


def test_order_value_band_overrides_reorder() -> None:
    assert choose_play(_signals(is_due_for_order=True, avg_order_value=Decimal("6000")), POLICY).type == "Premium Upsell"
    assert choose_play(_signals(avg_order_value=Decimal("1000")), POLICY).type == "Bundle Upgrade"
    assert choose_play(_signals(avg_order_value=Decimal("1000.01")), POLICY).type == "Value-Add Upsell"


def test_bundle_upgrade_waits_for_the_next_cycle() -> None:
    customer = CustomerRecord("C100", "Corner Kiosk")
    invoices = _invoices("C100", [10, 40, 70], ["800", "800", "800"])

    opportunity = derive_upsell_opportunity(customer, invoices, today=TODAY, policy=POLICY)

    assert opportunity is not None
    assert opportunity.type == "Bundle Upgrade"
    assert opportunity.expected_value == 400
    assert opportunity.best_time_to_contact == "In approximately 20 days"
    assert opportunity.signals.is_due_for_order is False
    assert opportunity.signals.purchase_growth_rate == 0.0


def test_due_customer_is_contacted_immediately() -> None:
    invoices = _invoices("C101", [30, 60, 90], ["2000", "2000", "2000"])

    opportunity = derive_upsell_opportunity(CustomerRecord("C101", "Grand Hotel"), invoices, today=TODAY, policy=POLICY)

    assert opportunity is not None
    assert opportunity.type == "Value-Add Upsell"
    assert opportunity.best_time_to_contact == "Immediately"
    assert opportunity.expected_value == 500


def test_value_recovery_applies_floor() -> None:
    invoices = _invoices("C102", [5, 15, 25, 35], ["100", "100", "1000", "1000"])

    assert purchase_growth_rate(sorted(invoices, key=lambda item: item.doc_date, reverse=True), POLICY) == -90.0
    opportunity = derive_upsell_opportunity(CustomerRecord("C102", "Shrinking"), invoices, today=TODAY, policy=POLICY)

    assert opportunity is not None
    assert opportunity.type == "Value Recovery"
    assert opportunity.expected_value == 1000


def test_ineligible_histories_produce_no_opportunity() -> None:
    customer = CustomerRecord("C103", "Edge")

    assert derive_upsell_opportunity(customer, _invoices("C103", [5], ["100"]), today=TODAY, policy=POLICY) is None
    assert (
        derive_upsell_opportunity(customer, _invoices("C103", [121, 150], ["100", "100"]), today=TODAY, policy=POLICY)
        is None
    )
    assert (
        derive_upsell_opportunity(customer, _invoices("C103", [3, 3], ["100", "100"]), today=TODAY, policy=POLICY)
        is None
    )


def test_ranking_puts_due_customers_first() -> None:
    histories = [
        CustomerHistory(CustomerRecord("NOTDUE", "Big"), _invoices("NOTDUE", [10, 40, 70], ["4000", "4000", "4000"])),
        CustomerHistory(CustomerRecord("DUE", "Small"), _invoices("DUE", [30, 60, 90], ["800", "800", "800"])),
        CustomerHistory(CustomerRecord("NONE", "Single"), _invoices("NONE", [3], ["800"])),
    ]

    ranked = rank_upsell_opportunities(histories, today=TODAY, policy=POLICY)

    assert [item.customer.card_code for item in ranked] == ["DUE", "NOTDUE"]


def test_primary_category_follows_name_keywords() -> None:
    assert primary_category("Sunrise Cafe").name == "Food Products"
    assert primary_category("Mini Mart Downtown").name == "Beverages"
    assert primary_category("Golden Pastry House").name == "Snacks"
    assert primary_category("Polar Ice Co").name == "Frozen Products"
    assert primary_category("Green Valley Farm").name == "Dairy Products"
    assert primary_category("Acme Holdings").name == "Specialty Foods"
    # Earlier keyword groups win when a name matches several.
    assert primary_category("Farm Restaurant").name == "Food Products"


def test_cross_sell_strategy_and_products() -> None:
    histories = [
        CustomerHistory(CustomerRecord("P", "Harbor Restaurant"), _invoices("P", [5, 20], ["6000", "6000"])),
        CustomerHistory(CustomerRecord("M", "City Market"), _invoices("M", [5, 20], ["3000", "3000"])),
        CustomerHistory(CustomerRecord("E", "Acme"), _invoices("E", [5], ["100"])),
        CustomerHistory(CustomerRecord("Z", "No Orders"), []),
    ]

    suggestions = generate_cross_sell_suggestions(histories, policy=POLICY)

    assert [item.customer.card_code for item in suggestions] == ["P", "M", "E"]
    premium, complementary, entry = suggestions
    assert premium.strategy.name == "Premium Cross-Category Expansion"
    assert complementary.strategy.name == "Complementary Product Introduction"
    assert entry.strategy.name == "Entry-Level Product Sampling"
    assert [product.category for product in premium.complementary_products] == ["Beverages", "Dairy Products"]
    assert premium.complementary_products[0].product == "Premium Beverages"
    assert premium.complementary_products[0].potential_value == 1800
    assert premium.recent_purchase_date == TODAY - timedelta(days=5)
