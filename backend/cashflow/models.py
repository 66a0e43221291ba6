"""
SQLAlchemy models for the cash-flow dashboard.
Ledger tables (users, accounts, categories, transactions) are owned by the
import/categorization side of the product; this backend reads them and owns
the planned items and budgets tables.
"""
import uuid
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Boolean,
    Date,
    DateTime,
    Numeric,
    Text,
    ForeignKey,
    Index,
    UniqueConstraint,
    JSON,
    Uuid,
)
from sqlalchemy.orm import relationship
from decimal import Decimal

from cashflow.database import Base


class Account(Base):
    """
    Bank account owned by a user.
    """
    __tablename__ = "accounts"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    account_type = Column(String(50), nullable=False)  # checking, savings, credit
    institution = Column(String(255))
    currency = Column(String(3), default="EUR")
    starting_balance = Column(Numeric(15, 2), default=Decimal("0"))
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="accounts")
    transactions = relationship("Transaction", back_populates="account")

    # Indexes and constraints
    __table_args__ = (
        Index("idx_accounts_user", "user_id"),
    )


class Category(Base):
    """
    Transaction category.
    Note: Includes userId for multi-tenancy support.
    """
    __tablename__ = "categories"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    category_type = Column(String(20), default="expense")  # expense, income, transfer
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="categories")

    # Indexes and constraints
    __table_args__ = (
        Index("idx_categories_user", "user_id"),
        UniqueConstraint("user_id", "name", name="categories_user_name"),
    )


class Transaction(Base):
    """
    Booked cash movement. Amounts are signed: positive is money in.
    Amount and booking date are immutable once booked; corrections are new
    transactions.
    """
    __tablename__ = "transactions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    account_id = Column(Uuid(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(15, 2), nullable=False)
    currency = Column(String(3), default="EUR")
    description = Column(Text)
    category_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id"), nullable=True, index=True)  # User-overridden category
    category_system_id = Column(Uuid(as_uuid=True), ForeignKey("categories.id"), nullable=True, index=True)  # AI-assigned category
    booked_at = Column(DateTime, nullable=False, index=True)
    include_in_analytics = Column(Boolean, default=True, nullable=False)  # Whether to include in forecasts and reports
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="transactions")
    account = relationship("Account", back_populates="transactions")
    category = relationship("Category", foreign_keys=[category_id])
    category_system = relationship("Category", foreign_keys=[category_system_id])

    # Indexes and constraints
    __table_args__ = (
        Index("idx_transactions_user", "user_id"),
        Index("idx_transactions_account", "account_id"),
        Index("idx_transactions_booked_at", "booked_at"),
    )


class PlannedItem(Base):
    """
    Expected one-off or monthly income/expense entered by the user.
    Folded into budgets under the "Planned Items" category.
    """
    __tablename__ = "planned_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    kind = Column(String(10), nullable=False)  # income, expense
    description = Column(Text, nullable=False)
    amount = Column(Numeric(15, 2), nullable=False)  # Always positive; kind gives the direction
    expected_date = Column(Date, nullable=False)
    recurrence = Column(String(10), nullable=False, default="one-off")  # one-off, monthly
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="planned_items")

    # Indexes
    __table_args__ = (
        Index("idx_planned_items_user", "user_id"),
        Index("idx_planned_items_date", "expected_date"),
    )


class Budget(Base):
    """
    Saved budget forecast. One live budget per user; saving replaces it.
    """
    __tablename__ = "budgets"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(String, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    horizon = Column(String(20), nullable=False)  # sixMonths, yearEnd
    forecast_months = Column(JSON, nullable=False, default=list)
    category_growth_rates = Column(JSON, nullable=False, default=dict)
    budget_data = Column(JSON, nullable=False, default=dict)
    historical_months = Column(JSON, nullable=False, default=list)
    generated_at = Column(String(40), nullable=True)  # ISO timestamp of the projection
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    user = relationship("User", back_populates="budget")

    # Indexes
    __table_args__ = (
        Index("idx_budgets_user", "user_id"),
    )


class User(Base):
    """
    User model.
    Minimal model for foreign key relationships; user management lives in
    the frontend auth layer.
    """
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(Text, nullable=True)
    email = Column(Text, unique=True, nullable=False)
    functional_currency = Column(String(3), default="EUR")  # User's reporting currency
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    accounts = relationship("Account", back_populates="user", cascade="all, delete-orphan")
    categories = relationship("Category", back_populates="user", cascade="all, delete-orphan")
    transactions = relationship("Transaction", back_populates="user", cascade="all, delete-orphan")
    planned_items = relationship("PlannedItem", back_populates="user", cascade="all, delete-orphan")
    budget = relationship("Budget", back_populates="user", uselist=False, cascade="all, delete-orphan")
