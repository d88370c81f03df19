"""Seller policy, forfeiture and account closure endpoints"""

import logging
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from payout_ledger.api.v1.schemas import (
    ClosureResponse,
    ForfeitureHistoryResponse,
    ForfeitureRecordResponse,
    ForfeitureRequest,
    ForfeitureResponse,
    PolicyRequest,
    PolicyResponse,
)
from payout_ledger.api.dependencies import get_forfeiture_engine, get_notification_client, get_request_id
from payout_ledger.infrastructure.database.session import get_db
from payout_ledger.infrastructure.database.repositories import SellerRepository
from payout_ledger.infrastructure.clients.webhooks import NotificationClient
from payout_ledger.domain.exceptions import UnpaidBalanceError
from payout_ledger.domain.models import ForfeitReason, PayoutSchedulePolicy
from payout_ledger.services.forfeiture import ForfeitureEngine

router = APIRouter()


@router.put("/sellers/{seller_id}/policy", response_model=PolicyResponse)
def put_payout_policy(seller_id: str, request_body: PolicyRequest, db: Session = Depends(get_db)):
    """Written by the seller settings subsystem; the ledger only reads it"""
    SellerRepository(db).set_policy(seller_id, PayoutSchedulePolicy(**request_body.model_dump()))
    db.commit()
    return PolicyResponse(seller_id=seller_id, **request_body.model_dump())


@router.get("/sellers/{seller_id}/forfeitures", response_model=ForfeitureHistoryResponse)
def list_forfeitures(seller_id: str, engine: ForfeitureEngine = Depends(get_forfeiture_engine)):
    records = engine.forfeitures_for(seller_id)
    return ForfeitureHistoryResponse(
        seller_id=seller_id,
        forfeitures=[ForfeitureRecordResponse.from_domain(r) for r in records],
    )


@router.get("/sellers/{seller_id}/forfeitures/preview", response_model=ForfeitureResponse)
def preview_forfeiture(
    seller_id: str,
    reason: ForfeitReason = Query(ForfeitReason.ACCOUNT_CLOSURE),
    engine: ForfeitureEngine = Depends(get_forfeiture_engine),
):
    amount = engine.amount_to_forfeit(seller_id, reason)
    return ForfeitureResponse(seller_id=seller_id, reason=reason, forfeited_cents=amount.cents, currency=amount.currency)


@router.post("/sellers/{seller_id}/forfeitures", response_model=ForfeitureResponse)
def forfeit_balance(
    seller_id: str,
    request_body: ForfeitureRequest,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    engine: ForfeitureEngine = Depends(get_forfeiture_engine),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """
    Forfeit the unpaid balance a reason requires.

    Naturally idempotent: repeating the call forfeits $0 and records nothing.
    """
    request_id = get_request_id(request)

    try:
        amount = engine.forfeit(seller_id, request_body.reason)

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    if amount:
        background_tasks.add_task(
            notifier.send_event,
            {
                "event": "BALANCE_FORFEITED",
                "seller_id": seller_id,
                "reason": request_body.reason.value,
                "amount_cents": amount.cents,
            },
        )
    return ForfeitureResponse(
        seller_id=seller_id,
        reason=request_body.reason,
        forfeited_cents=amount.cents,
        currency=amount.currency,
    )


@router.post("/sellers/{seller_id}/closure", response_model=ClosureResponse)
def close_account(
    seller_id: str,
    background_tasks: BackgroundTasks,
    request: Request,
    db: Session = Depends(get_db),
    engine: ForfeitureEngine = Depends(get_forfeiture_engine),
    notifier: NotificationClient = Depends(get_notification_client),
):
    """Close the account; refused with 409 while an unpaid balance remains"""
    request_id = get_request_id(request)

    try:
        closed_at = engine.close_account(seller_id)

    except UnpaidBalanceError as e:
        db.rollback()
        logging.info(f"Closure blocked: {e}", extra={"request_id": request_id, "seller_id": seller_id})
        raise HTTPException(
            status_code=409,
            detail={"message": str(e), "unpaid_cents": e.amount.cents, "formatted": e.amount.format()},
        )

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    background_tasks.add_task(notifier.send_event, {"event": "ACCOUNT_CLOSED", "seller_id": seller_id})
    return ClosureResponse(seller_id=seller_id, closed_at=closed_at)
