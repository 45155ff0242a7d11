from __future__ import annotations

from datetime import datetime, date

from sqlalchemy import (
    Column, Integer, String, Text, DateTime, Date, Numeric, ForeignKey
)

from .base import Base

# ---------- Business records that move money ----------
# Only payment_method, the amount, money_box_id and the id are read by the
# ledger. money_box_id is stored resolved: NULL means the user's cash box.

class Sale(Base):
    __tablename__ = "sales"
    id = Column(Integer, primary_key=True)
    customer_name = Column(String(200))
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(30), nullable=False, default="cash")
    money_box_id = Column(Integer)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

class SaleReturn(Base):
    __tablename__ = "sale_returns"
    id = Column(Integer, primary_key=True)
    sale_id = Column(Integer, ForeignKey("sales.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    refund_method = Column(String(30), nullable=False, default="cash")
    reason = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

class Purchase(Base):
    __tablename__ = "purchases"
    id = Column(Integer, primary_key=True)
    supplier_name = Column(String(200))
    total_amount = Column(Numeric(12, 2), nullable=False, default=0)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    payment_method = Column(String(30), nullable=False, default="cash")
    payment_status = Column(String(20), nullable=False, default="paid")  # paid|partial|unpaid
    money_box_id = Column(Integer)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

class PurchaseReturn(Base):
    __tablename__ = "purchase_returns"
    id = Column(Integer, primary_key=True)
    purchase_id = Column(Integer, ForeignKey("purchases.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    refund_method = Column(String(30), nullable=False, default="cash")
    reason = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

class Expense(Base):
    __tablename__ = "expenses"
    id = Column(Integer, primary_key=True)
    description = Column(Text)
    amount = Column(Numeric(12, 2), nullable=False)
    category = Column(String(100))
    date = Column(Date, default=date.today)
    payment_method = Column(String(30), nullable=False, default="cash")
    money_box_id = Column(Integer)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

class CustomerReceipt(Base):
    __tablename__ = "customer_receipts"
    id = Column(Integer, primary_key=True)
    customer_name = Column(String(200))
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(30), nullable=False, default="cash")
    money_box_id = Column(Integer)
    receipt_date = Column(Date, default=date.today)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

class SupplierPaymentReceipt(Base):
    __tablename__ = "supplier_payment_receipts"
    id = Column(Integer, primary_key=True)
    supplier_name = Column(String(200))
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(30), nullable=False, default="cash")
    money_box_id = Column(Integer)
    receipt_date = Column(Date, default=date.today)
    notes = Column(Text)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

# ---------- Receivables ----------

class Debt(Base):
    __tablename__ = "debts"
    id = Column(Integer, primary_key=True)
    customer_name = Column(String(200))
    sale_id = Column(Integer, ForeignKey("sales.id"))
    amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="unpaid")  # unpaid|partial|paid
    due_date = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)

class DebtPayment(Base):
    __tablename__ = "debt_payments"
    id = Column(Integer, primary_key=True)
    debt_id = Column(Integer, ForeignKey("debts.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(30), nullable=False, default="cash")
    money_box_id = Column(Integer)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)

class Installment(Base):
    __tablename__ = "installments"
    id = Column(Integer, primary_key=True)
    customer_name = Column(String(200))
    sale_id = Column(Integer, ForeignKey("sales.id"))
    amount = Column(Numeric(12, 2), nullable=False)
    paid_amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="unpaid")
    due_date = Column(Date)
    created_at = Column(DateTime, default=datetime.utcnow)

class InstallmentPayment(Base):
    __tablename__ = "installment_payments"
    id = Column(Integer, primary_key=True)
    installment_id = Column(Integer, ForeignKey("installments.id"), nullable=False)
    amount = Column(Numeric(12, 2), nullable=False)
    payment_method = Column(String(30), nullable=False, default="cash")
    money_box_id = Column(Integer)
    created_by = Column(Integer, ForeignKey("users.id"))
    created_at = Column(DateTime, default=datetime.utcnow)
