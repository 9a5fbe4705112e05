from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from salesops.api.envelope import PageMeta, PageParams
from salesops.core.config import Settings
from salesops.core.rbac import ActorUser
from salesops.insights.business import BusinessInsights, summarize_business_insights
from salesops.insights.cross_sell import CrossSellSuggestion, generate_cross_sell_suggestions
from salesops.insights.journey import (
    CustomerJourney,
    InteractionTimeline,
    build_customer_journey,
    build_interaction_timeline,
)
from salesops.insights.journey_summary import (
    JourneyAnalytics,
    JourneySummaryRow,
    ValueRangeSummary,
    customer_journey_analytics,
    customers_by_value_range,
    lifecycle_counts,
    payment_pattern_counts,
    summarize_customer_journeys,
)
from salesops.insights.performance import AgentPerformance, rank_agent_performance, score_agent_performance
from salesops.insights.periods import normalize_period
from salesops.insights.policy import InsightsPolicy
from salesops.insights.potential import CustomerPotential, rank_high_potential_customers
from salesops.insights.records import AgentRecord, CustomerRecord, InvoiceRecord
from salesops.insights.upsell import UpsellOpportunity, rank_upsell_opportunities
from salesops.metrics import observe_records_scanned
from salesops.otel import insight_span
from salesops.sales.repository import sales_repository, to_customer_record
from salesops.sales.service import visible_card_codes
from salesops.team.models import ROLE_SALES_AGENT, ROLE_SALES_MANAGER, TeamUser
from salesops.team.service import agents_managed_by, can_see_user, team_service, visible_user_ids


logger = logging.getLogger("salesops.insights")

JOURNEY_SORT_FIELDS = {
    "total_spent",
    "total_paid",
    "outstanding_balance",
    "invoice_count",
    "last_interaction",
    "first_interaction",
    "days_since_last_activity",
    "customer_name",
}


@dataclass(frozen=True, slots=True)
class RecommendationFeed:
    high_potential_customers: list[CustomerPotential]
    upsell_opportunities: list[UpsellOpportunity]
    cross_sell_suggestions: list[CrossSellSuggestion]
    business_insights: BusinessInsights
    performance_insights: list[AgentPerformance] | None


@dataclass(frozen=True, slots=True)
class JourneySummary:
    customers: list[JourneySummaryRow]
    total_customers: int
    lifecycle_distribution: dict[str, int]
    payment_pattern_distribution: dict[str, int]


@dataclass(frozen=True, slots=True)
class JourneyDetail:
    customer: CustomerRecord
    period: str
    start_date: date | None
    end_date: date | None
    journey: CustomerJourney


def _check_range(start: date | None, end: date | None) -> None:
    if start is not None and end is not None and start > end:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start_date must not be after end_date")


class InsightsService:
    def recommendations(
        self,
        session: Session,
        actor_user: ActorUser,
        *,
        today: date,
        policy: InsightsPolicy,
        settings: Settings,
    ) -> RecommendationFeed:
        scope = visible_user_ids(session, actor_user)
        customers = sales_repository.customers(session, scope)
        histories = sales_repository.customer_histories(
            session,
            customers,
            invoice_cap=settings.recommendation_invoice_cap,
            payment_cap=settings.recommendation_payment_cap,
        )
        invoices = [invoice for history in histories for invoice in history.invoices]
        observe_records_scanned("customer", len(customers))
        observe_records_scanned("invoice", len(invoices))

        with insight_span("potential", customers=len(customers)):
            potential = rank_high_potential_customers(histories, today=today, policy=policy)
        with insight_span("upsell", customers=len(customers)):
            upsell = rank_upsell_opportunities(histories, today=today, policy=policy)
        with insight_span("cross_sell", customers=len(customers)):
            cross_sell = generate_cross_sell_suggestions(histories, policy=policy)
        with insight_span("business", invoices=len(invoices)):
            business = summarize_business_insights(customers, invoices, today=today, policy=policy)

        performance = None
        if actor_user.is_admin or actor_user.is_manager:
            if actor_user.is_admin:
                agents = [agent for agent in sales_repository.agents(session) if agent.role == ROLE_SALES_AGENT]
            else:
                agents = sales_repository.agents(session, agents_managed_by(session, actor_user.user_id))
            performance = self._score_agents(session, agents, today=today, policy=policy)

        logger.info(
            "insights.recommendations",
            extra={
                "role": actor_user.role,
                "customers": len(customers),
                "invoices": len(invoices),
                "upsell": len(upsell),
            },
        )
        return RecommendationFeed(
            high_potential_customers=potential,
            upsell_opportunities=upsell,
            cross_sell_suggestions=cross_sell,
            business_insights=business,
            performance_insights=performance,
        )

    def journey_summary(
        self,
        session: Session,
        actor_user: ActorUser,
        *,
        today: date,
        policy: InsightsPolicy,
        page: PageParams,
        search: str | None,
        min_invoice_count: int | None,
        min_amount: Decimal | None,
        sort_by: str,
        descending: bool,
    ) -> tuple[JourneySummary, PageMeta]:
        codes = visible_card_codes(session, actor_user)
        aggregates = sales_repository.invoice_aggregates(session, codes, search=search)
        if min_invoice_count is not None:
            aggregates = [item for item in aggregates if item.invoice_count >= min_invoice_count]
        if min_amount is not None:
            aggregates = [item for item in aggregates if item.total_spent >= min_amount]
        payments = sales_repository.payment_aggregates(session, [item.card_code for item in aggregates])
        observe_records_scanned("customer", len(aggregates))

        with insight_span("journey_summary", customers=len(aggregates)):
            rows = summarize_customer_journeys(aggregates, payments, today=today, policy=policy)
            rows.sort(key=lambda row: (getattr(row, sort_by), row.card_code), reverse=descending)
            summary = JourneySummary(
                customers=page.slice(rows),
                total_customers=len(rows),
                lifecycle_distribution=lifecycle_counts(rows),
                payment_pattern_distribution=payment_pattern_counts(rows),
            )
        return summary, page.meta(len(rows))

    def journey_analytics(
        self,
        session: Session,
        actor_user: ActorUser,
        *,
        today: date,
        policy: InsightsPolicy,
    ) -> JourneyAnalytics:
        aggregates = sales_repository.invoice_aggregates(session, visible_card_codes(session, actor_user))
        observe_records_scanned("customer", len(aggregates))
        with insight_span("journey_analytics", customers=len(aggregates)):
            return customer_journey_analytics(aggregates, today=today, policy=policy)

    def journey_segments(
        self,
        session: Session,
        actor_user: ActorUser,
        *,
        min_amount: Decimal | None,
        max_amount: Decimal | None,
    ) -> ValueRangeSummary:
        if min_amount is not None and max_amount is not None and min_amount > max_amount:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="min_amount must not exceed max_amount")
        aggregates = sales_repository.invoice_aggregates(session, visible_card_codes(session, actor_user))
        return customers_by_value_range(aggregates, min_amount=min_amount, max_amount=max_amount)

    def customer_journey(
        self,
        session: Session,
        actor_user: ActorUser,
        card_code: str,
        *,
        today: date,
        policy: InsightsPolicy,
        period: str | None,
        start: date | None,
        end: date | None,
    ) -> JourneyDetail:
        _check_range(start, end)
        customer = self._load_customer(session, actor_user, card_code)
        invoices = sales_repository.invoices(session, [card_code], start=start, end=end)
        payments = sales_repository.payments(session, [card_code], start=start, end=end)
        links = sales_repository.links_for_invoices(session, [invoice.doc_num for invoice in invoices])
        observe_records_scanned("invoice", len(invoices))
        observe_records_scanned("payment", len(payments))

        resolved = normalize_period(period)
        fill_range = (start, end) if start is not None and end is not None else None
        with insight_span("journey", card_code=card_code, period=resolved):
            journey = build_customer_journey(
                invoices,
                payments,
                links,
                today=today,
                policy=policy,
                period=resolved,
                fill_range=fill_range,
            )
        return JourneyDetail(customer=customer, period=resolved, start_date=start, end_date=end, journey=journey)

    def interaction_timeline(self, session: Session, actor_user: ActorUser, card_code: str) -> InteractionTimeline:
        self._load_customer(session, actor_user, card_code)
        invoices = sales_repository.invoices(session, [card_code])
        payments = sales_repository.payments(session, [card_code])
        links = sales_repository.links_for_invoices(session, [invoice.doc_num for invoice in invoices])
        with insight_span("timeline", card_code=card_code):
            return build_interaction_timeline(invoices, payments, links)

    def agent_scorecard(
        self,
        session: Session,
        actor_user: ActorUser,
        agent_id: uuid.UUID,
        *,
        today: date,
        policy: InsightsPolicy,
        start: date | None,
        end: date | None,
    ) -> AgentPerformance:
        _check_range(start, end)
        user = team_service.get_user(session, agent_id)
        if user.role not in {ROLE_SALES_AGENT, ROLE_SALES_MANAGER}:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="agent not found")
        if not can_see_user(session, actor_user, agent_id):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only view your own team")

        window = None
        if start is not None or end is not None:
            window_end = end or today
            window = (start or window_end - timedelta(days=policy.recent_sales_window_days), window_end)
        [agent] = sales_repository.agents(session, [agent_id])
        return self._score_agents(session, [agent], today=today, policy=policy, window=window)[0]

    def agent_performance(
        self,
        session: Session,
        actor_user: ActorUser,
        *,
        today: date,
        policy: InsightsPolicy,
    ) -> list[AgentPerformance]:
        scope = visible_user_ids(session, actor_user)
        agents = sales_repository.agents(session, scope)
        if actor_user.is_admin:
            agents = [agent for agent in agents if agent.role == ROLE_SALES_AGENT]
        return self._score_agents(session, agents, today=today, policy=policy)

    def _score_agents(
        self,
        session: Session,
        agents: list[AgentRecord],
        *,
        today: date,
        policy: InsightsPolicy,
        window: tuple[date, date] | None = None,
    ) -> list[AgentPerformance]:
        if not agents:
            with insight_span("performance", agents=0):
                return []
        customers = sales_repository.customers(session, [agent.id for agent in agents])
        invoices = sales_repository.invoices(session, [customer.card_code for customer in customers])
        observe_records_scanned("invoice", len(invoices))

        customers_by_agent: dict[uuid.UUID, list[CustomerRecord]] = {}
        for customer in customers:
            if customer.assigned_to_id is not None:
                customers_by_agent.setdefault(customer.assigned_to_id, []).append(customer)
        invoices_by_code: dict[str, list[InvoiceRecord]] = {}
        for invoice in invoices:
            invoices_by_code.setdefault(invoice.card_code, []).append(invoice)

        start, end = window if window is not None else (today - timedelta(days=policy.recent_sales_window_days), today)
        scorecards = []
        with insight_span("performance", agents=len(agents)):
            for agent in agents:
                assigned = customers_by_agent.get(agent.id, [])
                scorecards.append(
                    score_agent_performance(
                        agent,
                        assigned,
                        [invoice for customer in assigned for invoice in invoices_by_code.get(customer.card_code, [])],
                        today=today,
                        policy=policy,
                        window=window,
                        orders=sales_repository.orders_for_agent(session, agent.id, start, end),
                        quotations=sales_repository.quotations_for_agent(session, agent.id, start, end),
                        calls=sales_repository.calls_for_agent(session, agent.id, start, end),
                    )
                )
        return rank_agent_performance(scorecards)

    def _load_customer(self, session: Session, actor_user: ActorUser, card_code: str) -> CustomerRecord:
        row = sales_repository.customer(session, card_code)
        if row is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="customer not found")
        scope = visible_user_ids(session, actor_user)
        # Out-of-scope customers are reported as missing.
        if scope is not None and row.assigned_to_id not in scope:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="customer not found")
        assignee = session.get(TeamUser, row.assigned_to_id) if row.assigned_to_id is not None else None
        return to_customer_record(row, assignee)


insights_service = InsightsService()
