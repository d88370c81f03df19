"""Payout scheduling endpoints - next payout date, payable amount and payout records"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from payout_ledger.api.v1.schemas import (
    PayoutAmountResponse,
    PayoutDecisionResponse,
    PayoutHistoryResponse,
    PayoutResponse,
    RecordPayoutRequest,
)
from payout_ledger.api.dependencies import get_notification_client, get_request_id, get_scheduler
from payout_ledger.infrastructure.database.session import get_db
from payout_ledger.infrastructure.clients.webhooks import NotificationClient
from payout_ledger.infrastructure.observability.metrics import eligibility_failures_counter
from payout_ledger.domain.exceptions import EligibilityServiceError, InvariantViolation
from payout_ledger.services.scheduler import PayoutScheduler

router = APIRouter()


@router.get("/sellers/{seller_id}/payouts/next", response_model=PayoutDecisionResponse)
def get_next_payout(
    seller_id: str,
    request: Request,
    today: Optional[date] = Query(None, description="Defaults to the current date"),
    scheduler: PayoutScheduler = Depends(get_scheduler),
):
    """
    Next payout date and the amount it would carry.

    Returns:
        payout_due with a date, or below_minimum with no date
    """
    request_id = get_request_id(request)

    try:
        decision = scheduler.decide(seller_id, today or date.today(), request_id)

    except InvariantViolation as e:
        logging.warning(f"Cannot schedule seller: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    except EligibilityServiceError as e:
        eligibility_failures_counter.inc()
        logging.error(f"Eligibility API error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Eligibility service unavailable")

    return PayoutDecisionResponse(
        seller_id=seller_id,
        payout_date=decision.payout_date,
        amount_cents=decision.amount.cents,
        currency=decision.amount.currency,
        instant=decision.instant,
        status="payout_due" if decision.due else "below_minimum",
    )


@router.get("/sellers/{seller_id}/payouts/amount", response_model=PayoutAmountResponse)
def get_payout_amount(
    seller_id: str,
    request: Request,
    payout_date: date = Query(..., alias="date"),
    scheduler: PayoutScheduler = Depends(get_scheduler),
):
    request_id = get_request_id(request)

    try:
        amount = scheduler.payout_amount_for_date(seller_id, payout_date)

    except InvariantViolation as e:
        raise HTTPException(status_code=409, detail=str(e))

    except EligibilityServiceError as e:
        eligibility_failures_counter.inc()
        logging.error(f"Eligibility API error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Eligibility service unavailable")

    return PayoutAmountResponse(
        seller_id=seller_id,
        payout_date=payout_date,
        amount_cents=amount.cents,
        currency=amount.currency,
    )


@router.get("/sellers/{seller_id}/payouts", response_model=PayoutHistoryResponse)
def get_payout_history(seller_id: str, scheduler: PayoutScheduler = Depends(get_scheduler)):
    payouts = scheduler.payouts_for(seller_id)
    return PayoutHistoryResponse(
        seller_id=seller_id,
        payouts=[PayoutResponse.from_domain(p) for p in payouts],
    )


@router.post("/sellers/{seller_id}/payouts", response_model=PayoutResponse)
def record_payout(
    seller_id: str,
    request_body: RecordPayoutRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    scheduler: PayoutScheduler = Depends(get_scheduler),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Record a payout for a date.

    Flow:
    1. Check-and-insert under the seller lock (no second payout for the date)
    2. Move the included balance periods to processing and commit
    3. Send async notification webhook
    """
    request_id = get_request_id(request)

    try:
        payout = scheduler.record_payout(seller_id, request_body.payout_date, request_body.today)

    except InvariantViolation as e:
        db.rollback()
        logging.warning(f"Payout rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    except EligibilityServiceError as e:
        eligibility_failures_counter.inc()
        db.rollback()
        logging.error(f"Eligibility API error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=503, detail="Eligibility service unavailable")

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    background_tasks.add_task(
        notifier.send_event,
        {
            "event": "PAYOUT_RECORDED",
            "payout_id": payout.id,
            "seller_id": seller_id,
            "payout_date": payout.payout_date.isoformat(),
            "amount_cents": payout.amount.cents,
            "instant": payout.instant,
        },
    )
    return PayoutResponse.from_domain(payout)


def _transition(payout_id: int, action: str, scheduler: PayoutScheduler, db: Session, request_id: str):
    if scheduler.get_payout(payout_id) is None:
        raise HTTPException(status_code=404, detail="Payout not found")

    try:
        if action == "complete":
            payout = scheduler.complete_payout(payout_id)
        elif action == "fail":
            payout = scheduler.fail_payout(payout_id)
        else:
            payout = scheduler.mark_payout_unclaimed(payout_id)

    except InvariantViolation as e:
        db.rollback()
        logging.warning(f"Payout transition rejected: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=409, detail=str(e))

    return PayoutResponse.from_domain(payout)


@router.post("/payouts/{payout_id}/complete", response_model=PayoutResponse)
def complete_payout(
    payout_id: int,
    request: Request,
    db: Session = Depends(get_db),
    scheduler: PayoutScheduler = Depends(get_scheduler),
):
    return _transition(payout_id, "complete", scheduler, db, get_request_id(request))


@router.post("/payouts/{payout_id}/fail", response_model=PayoutResponse)
def fail_payout(
    payout_id: int,
    request: Request,
    db: Session = Depends(get_db),
    scheduler: PayoutScheduler = Depends(get_scheduler),
):
    """Failed payouts hand their balance periods back to the unpaid pool"""
    return _transition(payout_id, "fail", scheduler, db, get_request_id(request))


@router.post("/payouts/{payout_id}/unclaimed", response_model=PayoutResponse)
def mark_payout_unclaimed(
    payout_id: int,
    request: Request,
    db: Session = Depends(get_db),
    scheduler: PayoutScheduler = Depends(get_scheduler),
):
    return _transition(payout_id, "unclaimed", scheduler, db, get_request_id(request))
