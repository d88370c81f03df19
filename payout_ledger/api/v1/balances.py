"""GET /v1/sellers/{seller_id}/balance and friends - read-only ledger queries"""

from datetime import date
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query

from payout_ledger.api.v1.schemas import (
    BalancePeriodSchema,
    BalancePeriodsResponse,
    BalanceResponse,
    ReconciliationResponse,
    SalesBreakdownResponse,
)
from payout_ledger.api.dependencies import get_ledger
from payout_ledger.domain.models import Holder
from payout_ledger.services.ledger import BalanceLedger

router = APIRouter()


@router.get("/sellers/{seller_id}/balance", response_model=BalanceResponse)
def get_unpaid_balance(
    seller_id: str,
    as_of: Optional[date] = Query(None, description="Only count periods dated on or before this day"),
    holder: Optional[Holder] = Query(None),
    via: Literal["index", "sql"] = Query("index"),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """Unpaid balance; reads never take the seller lock"""
    balance = ledger.unpaid_balance(seller_id, as_of=as_of, holder=holder, via=via)
    return BalanceResponse(
        seller_id=seller_id,
        as_of=as_of,
        holder=holder,
        unpaid_cents=balance.cents,
        currency=balance.currency,
        formatted=balance.format(),
    )


@router.get("/sellers/{seller_id}/periods", response_model=BalancePeriodsResponse)
def get_balance_periods(seller_id: str, ledger: BalanceLedger = Depends(get_ledger)):
    periods = ledger.periods_for(seller_id)
    return BalancePeriodsResponse(
        seller_id=seller_id,
        periods=[BalancePeriodSchema.from_domain(p) for p in periods],
    )


@router.get("/sellers/{seller_id}/sales-breakdown", response_model=SalesBreakdownResponse)
def get_sales_breakdown(
    seller_id: str,
    period_ids: List[int] = Query(..., description="Balance period ids, e.g. ?period_ids=1&period_ids=2"),
    ledger: BalanceLedger = Depends(get_ledger),
):
    """
    Sales, refunds, chargebacks, fees and taxes for a set of balance periods.

    Returns:
        Independent sums whose net_cents equals the periods' total amount
    """
    breakdown = ledger.sales_data_for_period(seller_id, period_ids)
    return SalesBreakdownResponse(seller_id=seller_id, balance_period_ids=period_ids, **vars(breakdown))


@router.get("/sellers/{seller_id}/reconciliation", response_model=ReconciliationResponse)
def get_reconciliation(seller_id: str, ledger: BalanceLedger = Depends(get_ledger)):
    discrepancies = ledger.reconcile(seller_id)
    return ReconciliationResponse(
        seller_id=seller_id,
        consistent=not discrepancies,
        discrepancies=discrepancies,
    )
