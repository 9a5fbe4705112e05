from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal
from typing import Any

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from salesops.api.envelope import Envelope, PageParams, ok, page_params, resolve_sort
from salesops.core.clock import Clock, get_clock
from salesops.core.config import Settings, get_settings
from salesops.core.database import get_db
from salesops.core.rbac import ActorUser, get_current_actor
from salesops.insights.policy import InsightsPolicy, get_insights_policy
from salesops.insights.service import JOURNEY_SORT_FIELDS, insights_service

router = APIRouter(prefix="/api", tags=["insights"])


@router.get("/insights/recommendations")
def get_recommendations(
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
    policy: InsightsPolicy = Depends(get_insights_policy),
    settings: Settings = Depends(get_settings),
) -> Envelope[Any]:
    feed = insights_service.recommendations(db, actor, today=clock.today(), policy=policy, settings=settings)
    return ok(feed)


@router.get("/journeys/summary")
def get_journey_summary(
    q: str | None = Query(default=None),
    min_invoice_count: int | None = Query(default=None, ge=0),
    min_amount: Decimal | None = Query(default=None),
    sort_by: str | None = Query(default=None),
    sort_order: str | None = Query(default=None),
    page: PageParams = Depends(page_params),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
    policy: InsightsPolicy = Depends(get_insights_policy),
) -> Envelope[Any]:
    field, descending = resolve_sort(sort_by, sort_order, JOURNEY_SORT_FIELDS, "total_spent")
    summary, meta = insights_service.journey_summary(
        db,
        actor,
        today=clock.today(),
        policy=policy,
        page=page,
        search=q,
        min_invoice_count=min_invoice_count,
        min_amount=min_amount,
        sort_by=field,
        descending=descending,
    )
    return ok(summary, pagination=meta)


@router.get("/journeys/analytics")
def get_journey_analytics(
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
    policy: InsightsPolicy = Depends(get_insights_policy),
) -> Envelope[Any]:
    return ok(insights_service.journey_analytics(db, actor, today=clock.today(), policy=policy))


@router.get("/journeys/segments")
def get_journey_segments(
    min_amount: Decimal | None = Query(default=None),
    max_amount: Decimal | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(insights_service.journey_segments(db, actor, min_amount=min_amount, max_amount=max_amount))


@router.get("/journeys/{card_code}")
def get_customer_journey(
    card_code: str,
    period: str | None = Query(default=None),
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
    policy: InsightsPolicy = Depends(get_insights_policy),
) -> Envelope[Any]:
    detail = insights_service.customer_journey(
        db,
        actor,
        card_code,
        today=clock.today(),
        policy=policy,
        period=period,
        start=start_date,
        end=end_date,
    )
    return ok(detail)


@router.get("/journeys/{card_code}/timeline")
def get_interaction_timeline(
    card_code: str,
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
) -> Envelope[Any]:
    return ok(insights_service.interaction_timeline(db, actor, card_code))


@router.get("/agents/performance")
def get_agent_performance(
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
    policy: InsightsPolicy = Depends(get_insights_policy),
) -> Envelope[Any]:
    return ok(insights_service.agent_performance(db, actor, today=clock.today(), policy=policy))


@router.get("/agents/{agent_id}/scorecard")
def get_agent_scorecard(
    agent_id: uuid.UUID,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    actor: ActorUser = Depends(get_current_actor),
    clock: Clock = Depends(get_clock),
    policy: InsightsPolicy = Depends(get_insights_policy),
) -> Envelope[Any]:
    scorecard = insights_service.agent_scorecard(
        db,
        actor,
        agent_id,
        today=clock.today(),
        policy=policy,
        start=start_date,
        end=end_date,
    )
    return ok(scorecard)
