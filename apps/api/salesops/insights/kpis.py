from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal

from salesops.insights.numbers import safe_mean, safe_percent
from salesops.insights.periods import month_key
from salesops.insights.policy import InsightsPolicy
from salesops.insights.records import InvoiceRecord


@dataclass(slots=True)
class MonthlyKpi:
    month: str
    invoice_count: int = 0
    revenue: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")


@dataclass(slots=True)
class CustomerKpi:
    card_code: str
    card_name: str
    invoice_count: int = 0
    revenue: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")


@dataclass(slots=True)
class ProductKpi:
    item_code: str
    description: str
    quantity: Decimal = Decimal("0")
    revenue: Decimal = Decimal("0")
    invoice_count: int = 0


@dataclass(frozen=True, slots=True)
class GlobalKpis:
    total_invoices: int
    total_revenue: Decimal
    total_paid: Decimal
    total_outstanding: Decimal
    average_invoice_value: Decimal
    unique_customers: int
    average_revenue_per_customer: Decimal
    paid_invoices: int
    unpaid_invoices: int
    collection_rate: float
    monthly_trends: list[MonthlyKpi]
    top_customers: list[CustomerKpi]
    top_products: list[ProductKpi]


def compute_global_kpis(invoices: Iterable[InvoiceRecord], *, policy: InsightsPolicy) -> GlobalKpis:
    """Portfolio KPIs on gross invoice totals; an empty input yields zeros and empty lists."""
    invoice_list = list(invoices)
    months: dict[str, MonthlyKpi] = {}
    customers: dict[str, CustomerKpi] = {}
    products: dict[str, ProductKpi] = {}
    unpaid = 0

    for invoice in invoice_list:
        month = months.setdefault(month_key(invoice.doc_date), MonthlyKpi(month=month_key(invoice.doc_date)))
        month.invoice_count += 1
        month.revenue += invoice.doc_total
        month.paid += invoice.paid_to_date

        customer = customers.setdefault(invoice.card_code, CustomerKpi(invoice.card_code, invoice.card_name))
        customer.invoice_count += 1
        customer.revenue += invoice.doc_total
        customer.paid += invoice.paid_to_date

        if invoice.paid_to_date < invoice.doc_total - policy.paid_epsilon:
            unpaid += 1

        for line in invoice.lines:
            product = products.setdefault(line.item_code, ProductKpi(line.item_code, line.description))
            product.quantity += line.quantity
            product.revenue += line.amount
            product.invoice_count += 1

    total_revenue = sum((invoice.doc_total for invoice in invoice_list), Decimal("0"))
    total_paid = sum((invoice.paid_to_date for invoice in invoice_list), Decimal("0"))
    top = policy.top_list_size

    return GlobalKpis(
        total_invoices=len(invoice_list),
        total_revenue=total_revenue,
        total_paid=total_paid,
        total_outstanding=total_revenue - total_paid,
        average_invoice_value=safe_mean([invoice.doc_total for invoice in invoice_list]),
        unique_customers=len(customers),
        average_revenue_per_customer=total_revenue / len(customers) if customers else Decimal("0"),
        paid_invoices=len(invoice_list) - unpaid,
        unpaid_invoices=unpaid,
        collection_rate=safe_percent(total_paid, total_revenue),
        monthly_trends=[months[key] for key in sorted(months)],
        top_customers=sorted(customers.values(), key=lambda item: item.revenue, reverse=True)[:top],
        top_products=sorted(products.values(), key=lambda item: item.revenue, reverse=True)[:top],
    )
