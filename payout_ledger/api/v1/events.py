"""POST /v1/events - raw marketplace event ingestion"""

import logging
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from payout_ledger.api.v1.schemas import EventRequest, TransactionResponse
from payout_ledger.api.dependencies import get_ledger, get_request_id
from payout_ledger.infrastructure.database.session import get_db
from payout_ledger.domain.exceptions import LedgerIntegrityError, UnclassifiableEvent
from payout_ledger.domain.models import RawEvent
from payout_ledger.services.ledger import BalanceLedger

router = APIRouter()


@router.post("/events", response_model=TransactionResponse)
def ingest_event(
    request_body: EventRequest,
    request: Request,
    db: Session = Depends(get_db),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """
    Record a sale, refund, chargeback, credit or adjustment.

    Flow:
    1. Classify the event into a ledger transaction
    2. Attribute it to the seller's balance period for its date and holder
    3. Return the recorded transaction (the original one on replay)
    """
    request_id = get_request_id(request)

    try:
        transaction = ledger.ingest(RawEvent(**request_body.model_dump()))
        return TransactionResponse.from_domain(transaction)

    except UnclassifiableEvent as e:
        db.rollback()
        logging.warning(f"Unclassifiable event: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except LedgerIntegrityError as e:
        db.rollback()
        logging.critical(f"Ledger integrity error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=422, detail=str(e))

    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")
