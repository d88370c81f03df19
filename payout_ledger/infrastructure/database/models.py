"""SQLAlchemy ORM models for the seller balance ledger"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.sql import func

Base = declarative_base()


class SellerAccount(Base):
    """Seller payout policy, cached fee tier and closure marker; also the per-seller lock row"""

    __tablename__ = "seller_account"

    id = Column(Text, primary_key=True)
    payout_frequency = Column(Text, nullable=True)  # NULL: no policy configured yet
    minimum_payout_cents = Column(BigInteger, nullable=True)
    forfeit_balance_on_closure = Column(Boolean, nullable=True)  # NULL: platform default
    lifetime_sales_cents = Column(BigInteger, nullable=False, default=0)
    tier = Column(BigInteger, nullable=False, default=0)
    closed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    balance_periods = relationship("LedgerBalancePeriod", back_populates="seller")


class LedgerTransaction(Base):
    """Immutable ledger fact; only balance_period_id is written after insert"""

    __tablename__ = "ledger_transaction"

    id = Column(Integer, primary_key=True, autoincrement=True)
    idempotency_key = Column(Text, nullable=True, unique=True)
    seller_id = Column(Text, ForeignKey("seller_account.id"), nullable=False, index=True)
    occurred_at = Column(DateTime(timezone=True), nullable=False)
    kind = Column(Text, nullable=False)
    gross_cents = Column(BigInteger, nullable=False)
    fee_cents = Column(BigInteger, nullable=False, default=0)
    tax_cents = Column(BigInteger, nullable=False, default=0)
    affiliate_cents = Column(BigInteger, nullable=False, default=0)
    currency = Column(Text, nullable=False)
    processor = Column(Text, nullable=False)
    holder = Column(Text, nullable=False)
    discover = Column(Boolean, nullable=False, default=False)
    refund_fee_waived = Column(Boolean, nullable=False, default=False)
    reference_id = Column(Integer, ForeignKey("ledger_transaction.id"), nullable=True, index=True)
    balance_period_id = Column(Integer, ForeignKey("balance_period.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    balance_period = relationship("LedgerBalancePeriod", back_populates="transactions")


class LedgerBalancePeriod(Base):
    """Payable bucket keyed by (seller, period date, holder)"""

    __tablename__ = "balance_period"
    __table_args__ = (Index("ix_balance_period_seller_date_holder", "seller_id", "period_date", "holder"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    seller_id = Column(Text, ForeignKey("seller_account.id"), nullable=False)
    period_date = Column(Date, nullable=False)
    holder = Column(Text, nullable=False)
    currency = Column(Text, nullable=False)
    state = Column(Text, nullable=False, default="unpaid")
    amount_cents = Column(BigInteger, nullable=False, default=0)
    holding_amount_cents = Column(BigInteger, nullable=False, default=0)
    payout_id = Column(Integer, ForeignKey("payout.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    seller = relationship("SellerAccount", back_populates="balance_periods")
    transactions = relationship("LedgerTransaction", back_populates="balance_period")
    payout = relationship("LedgerPayout", back_populates="periods")


class LedgerPayout(Base):
    """Payout decision handed to the money-movement step"""

    __tablename__ = "payout"
    __table_args__ = (Index("ix_payout_seller_date", "seller_id", "payout_date"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    seller_id = Column(Text, ForeignKey("seller_account.id"), nullable=False)
    payout_date = Column(Date, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    currency = Column(Text, nullable=False)
    state = Column(Text, nullable=False, default="processing")
    instant = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    periods = relationship("LedgerBalancePeriod", back_populates="payout")


class BalanceForfeiture(Base):
    """Audit record of a balance write-off"""

    __tablename__ = "balance_forfeiture"

    id = Column(Integer, primary_key=True, autoincrement=True)
    seller_id = Column(Text, ForeignKey("seller_account.id"), nullable=False, index=True)
    reason = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
    currency = Column(Text, nullable=False)
    period_ids = Column(JSON, nullable=False)
    comment = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BalanceIndexEntry(Base):
    """Search-index projection of unpaid balance periods, read by the fast balance path"""

    __tablename__ = "balance_index_entry"

    period_id = Column(Integer, ForeignKey("balance_period.id"), primary_key=True)
    seller_id = Column(Text, nullable=False, index=True)
    period_date = Column(Date, nullable=False)
    holder = Column(Text, nullable=False)
    amount_cents = Column(BigInteger, nullable=False)
