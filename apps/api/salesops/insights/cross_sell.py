from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from salesops.insights.numbers import round_half_up, safe_mean
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import CustomerHistory, CustomerRecord


@dataclass(frozen=True, slots=True)
class ProductCategory:
    id: int
    name: str
    related: tuple[int, int]


PRODUCT_CATEGORIES: dict[int, ProductCategory] = {
    1: ProductCategory(1, "Food Products", (2, 5)),
    2: ProductCategory(2, "Beverages", (1, 3)),
    3: ProductCategory(3, "Snacks", (1, 2)),
    4: ProductCategory(4, "Frozen Products", (1, 6)),
    5: ProductCategory(5, "Dairy Products", (1, 4)),
    6: ProductCategory(6, "Specialty Foods", (4, 5)),
}
DEFAULT_CATEGORY_ID = 6

# First keyword group that appears in the customer name decides the category.
_NAME_KEYWORDS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("restaurant", "cafe", "catering"), 1),
    (("mart", "store", "market"), 2),
    (("bakery", "pastry"), 3),
    (("frozen", "ice"), 4),
    (("dairy", "farm"), 5),
)


@dataclass(frozen=True, slots=True)
class CrossSellStrategy:
    name: str
    approach: str
    timing: str


@dataclass(frozen=True, slots=True)
class ComplementaryProduct:
    category: str
    product: str
    fit: str
    potential_value: int


@dataclass(frozen=True, slots=True)
class CrossSellSuggestion:
    customer: CustomerRecord
    primary_category: str
    recent_purchase_date: date | None
    total_spent: Decimal
    avg_order_value: Decimal
    purchase_count: int
    strategy: CrossSellStrategy
    complementary_products: tuple[ComplementaryProduct, ...]


def primary_category(card_name: str) -> ProductCategory:
    name = card_name.lower()
    for keywords, category_id in _NAME_KEYWORDS:
        if any(keyword in name for keyword in keywords):
            return PRODUCT_CATEGORIES[category_id]
    return PRODUCT_CATEGORIES[DEFAULT_CATEGORY_ID]


def cross_sell_strategy(total_spent: Decimal, policy: InsightsPolicy) -> CrossSellStrategy:
    if total_spent > policy.cross_sell_premium_spend:
        return CrossSellStrategy(
            name="Premium Cross-Category Expansion",
            approach="Scheduled business review with product portfolio presentation",
            timing="Quarterly business review",
        )
    if total_spent > policy.cross_sell_complementary_spend:
        return CrossSellStrategy(
            name="Complementary Product Introduction",
            approach="Email campaign followed by sales call",
            timing="Within 2 weeks of last purchase",
        )
    return CrossSellStrategy(
        name="Entry-Level Product Sampling",
        approach="Include product samples with next delivery",
        timing="Next order",
    )


def generate_cross_sell_suggestions(
    histories: Iterable[CustomerHistory],
    *,
    policy: InsightsPolicy,
    limit: int | None = None,
) -> list[CrossSellSuggestion]:
    suggestions: list[CrossSellSuggestion] = []
    for history in histories:
        if not history.invoices:
            continue
        totals = [invoice.doc_total for invoice in history.invoices]
        total_spent = sum(totals, Decimal("0"))
        avg_order_value = safe_mean(totals)
        category = primary_category(history.customer.card_name)
        products = tuple(
            ComplementaryProduct(
                category=PRODUCT_CATEGORIES[related_id].name,
                product=f"Premium {PRODUCT_CATEGORIES[related_id].name}",
                fit="High",
                potential_value=round_half_up(avg_order_value * policy.cross_sell_value_share),
            )
            for related_id in category.related
        )
        suggestions.append(
            CrossSellSuggestion(
                customer=history.customer,
                primary_category=category.name,
                recent_purchase_date=max(invoice.doc_date for invoice in history.invoices),
                total_spent=total_spent,
                avg_order_value=avg_order_value,
                purchase_count=len(history.invoices),
                strategy=cross_sell_strategy(total_spent, policy),
                complementary_products=products,
            )
        )
    suggestions.sort(key=lambda item: item.total_spent, reverse=True)
    return suggestions[: limit if limit is not None else policy.top_n]
