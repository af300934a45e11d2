"""Financial service - Payments, refunds, ledger and invoices"""

import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...models_customer import Customer
from ...models_financial import Invoice, Payment, Transaction
from ..integrations.webhooks import trigger_event
from ..notifications.service import NotificationService
from .ledger import current_balance, record_transaction
from .schemas import (
    InvoiceCreate,
    InvoicePaymentRequest,
    InvoiceUpdate,
    PaymentCreate,
    PixPaymentCreate,
    RefundRequest,
    TransactionCreate,
)

logger = logging.getLogger(__name__)

INTEREST_FREE_INSTALLMENTS = 3
INSTALLMENT_INTEREST_RATE = 0.0199
OPEN_INVOICE_STATUSES = ("PENDING", "SENT", "PARTIAL")


def calculate_installments(amount: float, max_installments: int = 12) -> list[dict]:
    """First installments are interest free, then 1.99% per extra installment"""
    options = []
    for n in range(1, max_installments + 1):
        has_interest = n > INTEREST_FREE_INSTALLMENTS
        rate = INSTALLMENT_INTEREST_RATE * (n - INTEREST_FREE_INSTALLMENTS) if has_interest else 0
        total = amount * (1 + rate)
        options.append(
            {
                "installments": n,
                "installment_amount": round(total / n, 2),
                "total_amount": round(total, 2),
                "interest_rate": round(rate * 100, 2),
                "has_interest": has_interest,
            }
        )
    return options


def pix_code(tx_id: str, amount: float, merchant: str) -> str:
    """Copy-paste PIX payload for the charge"""
    name = "".join(c for c in merchant.upper() if c.isalnum())[:25] or "GLAMO"
    return (
        f"00020126580014BR.GOV.BCB.PIX0136{tx_id}"
        f"52040000530398654{len(f'{amount:.2f}'):02d}{amount:.2f}"
        f"5802BR59{len(name):02d}{name}6304"
    )


def invoice_totals(items: list[dict], discount: float, tax: float) -> dict:
    subtotal = sum(i["quantity"] * i["unit_price"] - (i.get("discount") or 0) for i in items)
    total = subtotal - (discount or 0) + (tax or 0)
    return {"subtotal": round(subtotal, 2), "total": round(max(total, 0), 2)}


def next_invoice_number(db: Session, tenant_id: str, now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    prefix = f"INV-{now:%Y%m}-"
    last = (
        db.query(Invoice.number)
        .filter(Invoice.tenant_id == tenant_id, Invoice.number.like(f"{prefix}%"))
        .order_by(Invoice.number.desc())
        .first()
    )
    sequence = int(last[0].rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


class PaymentService:
    """Payments, PIX charges, refunds and manual ledger entries"""

    def __init__(self, db: Session):
        self.db = db

    def _get(self, payment_id: str, tenant_id: str) -> Payment:
        payment = (
            self.db.query(Payment).filter(Payment.id == payment_id, Payment.tenant_id == tenant_id).first()
        )
        if not payment:
            raise HTTPException(status_code=404, detail="Payment not found")
        return payment

    def _check_customer(self, tenant_id: str, customer_id: Optional[str]) -> None:
        if customer_id and not (
            self.db.query(Customer.id).filter(Customer.id == customer_id, Customer.tenant_id == tenant_id).first()
        ):
            raise HTTPException(status_code=404, detail="Customer not found")

    def _invoice(self, tenant_id: str, invoice_id: Optional[str]) -> Optional[Invoice]:
        if not invoice_id:
            return None
        invoice = self.db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id).first()
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        if invoice.status in ("PAID", "CANCELLED"):
            raise HTTPException(status_code=400, detail=f"Invoice is {invoice.status}")
        return invoice

    def _settle(self, payment: Payment, category: str, user_id: Optional[str]) -> None:
        """Ledger row, invoice balance and webhook for a completed payment"""
        record_transaction(
            self.db,
            payment.tenant_id,
            "PAYMENT",
            payment.net_amount,
            category=category,
            description=payment.description or f"{payment.method} payment",
            payment_id=payment.id,
            reference_id=payment.appointment_id,
            created_by=user_id,
        )
        if payment.invoice_id:
            invoice = self.db.query(Invoice).filter(Invoice.id == payment.invoice_id).first()
            apply_invoice_payment(invoice, payment.amount)

    def list_query(self, user: User, status=None, method=None, start=None, end=None, customer_id=None):
        query = self.db.query(Payment).filter(Payment.tenant_id == user.tenant_id)
        if status:
            query = query.filter(Payment.status == status.upper())
        if method:
            query = query.filter(Payment.method == method.upper())
        if start:
            query = query.filter(Payment.created_at >= start)
        if end:
            query = query.filter(Payment.created_at <= end)
        if customer_id:
            query = query.filter(Payment.customer_id == customer_id)
        return query.order_by(Payment.created_at.desc())

    def get_payment(self, payment_id: str, user: User) -> Payment:
        return self._get(payment_id, user.tenant_id)

    def create_payment(self, data: PaymentCreate, user: User) -> Payment:
        if data.method == "PIX":
            raise HTTPException(status_code=400, detail="Use the PIX endpoint for PIX payments")
        self._check_customer(user.tenant_id, data.customer_id)
        self._invoice(user.tenant_id, data.invoice_id)

        now = datetime.utcnow()
        payment = Payment(
            tenant_id=user.tenant_id,
            customer_id=data.customer_id,
            appointment_id=data.appointment_id,
            invoice_id=data.invoice_id,
            method=data.method,
            status="COMPLETED",
            amount=round(data.amount, 2),
            tip=round(data.tip, 2),
            discount=round(data.discount, 2),
            fees=round(data.fees, 2),
            net_amount=round(data.amount + data.tip - data.discount - data.fees, 2),
            installments=data.installments,
            description=data.description,
            paid_at=now,
            created_by=user.id,
        )
        self.db.add(payment)
        self.db.flush()
        self._settle(payment, data.category, user.id)
        self.db.commit()
        self.db.refresh(payment)

        logger.info(f"✅ Payment {payment.id} of {payment.amount:.2f} via {payment.method}")
        trigger_event(self.db, user.tenant_id, "payment.completed", _payment_payload(payment))
        return payment

    def create_pix_payment(self, data: PixPaymentCreate, user: User) -> Payment:
        self._check_customer(user.tenant_id, data.customer_id)
        self._invoice(user.tenant_id, data.invoice_id)
        tx_id = f"pix{secrets.token_hex(12)}"
        payment = Payment(
            tenant_id=user.tenant_id,
            customer_id=data.customer_id,
            appointment_id=data.appointment_id,
            invoice_id=data.invoice_id,
            method="PIX",
            status="PENDING",
            amount=round(data.amount, 2),
            net_amount=round(data.amount, 2),
            description=data.description,
            pix_code=pix_code(tx_id, data.amount, user.tenant.name if user.tenant else ""),
            pix_expires_at=datetime.utcnow() + timedelta(minutes=data.expiration_minutes),
            payment_metadata={"tx_id": tx_id},
            created_by=user.id,
        )
        self.db.add(payment)
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"📱 PIX charge {payment.id} created for {payment.amount:.2f}")
        return payment

    def confirm_pix_payment(self, payment_id: str, user: User) -> Payment:
        payment = self._get(payment_id, user.tenant_id)
        if payment.method != "PIX" or payment.status != "PENDING":
            raise HTTPException(status_code=400, detail="Only pending PIX payments can be confirmed")
        payment.status = "COMPLETED"
        payment.paid_at = datetime.utcnow()
        self._settle(payment, "SERVICE", user.id)
        self.db.commit()
        self.db.refresh(payment)
        trigger_event(self.db, user.tenant_id, "payment.completed", _payment_payload(payment))
        return payment

    def refund_payment(self, payment_id: str, data: RefundRequest, user: User) -> Payment:
        payment = self._get(payment_id, user.tenant_id)
        if payment.status != "COMPLETED":
            raise HTTPException(status_code=400, detail="Only completed payments can be refunded")
        amount = round(data.amount if data.amount is not None else payment.amount, 2)
        if amount > payment.amount:
            raise HTTPException(status_code=400, detail="Refund amount exceeds the amount paid")

        payment.refunded_amount = amount
        payment.status = "PARTIALLY_REFUNDED" if amount < payment.amount else "REFUNDED"
        payment.refunded_at = datetime.utcnow()
        payment.refund_reason = data.reason
        record_transaction(
            self.db,
            user.tenant_id,
            "REFUND",
            -amount,
            category="SERVICE",
            description=data.reason or "Refund",
            payment_id=payment.id,
            created_by=user.id,
        )
        self.db.commit()
        self.db.refresh(payment)
        logger.info(f"↩️ Payment {payment.id} refunded {amount:.2f} ({payment.status})")
        return payment

    # ========================================================================
    # Ledger
    # ========================================================================

    def transactions_query(self, user: User, type_=None, category=None, start=None, end=None):
        query = self.db.query(Transaction).filter(Transaction.tenant_id == user.tenant_id)
        if type_:
            query = query.filter(Transaction.type == type_.upper())
        if category:
            query = query.filter(Transaction.category == category.upper())
        if start:
            query = query.filter(Transaction.created_at >= start)
        if end:
            query = query.filter(Transaction.created_at <= end)
        return query.order_by(Transaction.created_at.desc())

    def create_transaction(self, data: TransactionCreate, user: User) -> Transaction:
        transaction = record_transaction(
            self.db,
            user.tenant_id,
            data.type,
            data.amount,
            category=data.category,
            description=data.description,
            reference_id=data.reference_id,
            created_by=user.id,
        )
        self.db.commit()
        self.db.refresh(transaction)
        return transaction

    def balance(self, user: User) -> dict:
        return {"balance": current_balance(self.db, user.tenant_id), "as_of": datetime.utcnow()}


def _payment_payload(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "method": payment.method,
        "amount": payment.amount,
        "net_amount": payment.net_amount,
        "customer_id": payment.customer_id,
        "appointment_id": payment.appointment_id,
        "invoice_id": payment.invoice_id,
        "paid_at": payment.paid_at,
    }


def apply_invoice_payment(invoice: Invoice, amount: float) -> None:
    invoice.amount_paid = round((invoice.amount_paid or 0) + amount, 2)
    invoice.amount_due = round(max(invoice.total - invoice.amount_paid, 0), 2)
    if invoice.amount_due <= 0:
        invoice.status = "PAID"
        invoice.paid_at = datetime.utcnow()
    else:
        invoice.status = "PARTIAL"


class InvoiceService:
    def __init__(self, db: Session):
        self.db = db

    def _get(self, invoice_id: str, tenant_id: str) -> Invoice:
        invoice = self.db.query(Invoice).filter(Invoice.id == invoice_id, Invoice.tenant_id == tenant_id).first()
        if not invoice:
            raise HTTPException(status_code=404, detail="Invoice not found")
        return invoice

    def get_invoice(self, invoice_id: str, user: User) -> Invoice:
        return self._get(invoice_id, user.tenant_id)

    def list_query(self, user: User, status=None, customer_id=None):
        query = self.db.query(Invoice).filter(Invoice.tenant_id == user.tenant_id)
        if status:
            query = query.filter(Invoice.status == status.upper())
        if customer_id:
            query = query.filter(Invoice.customer_id == customer_id)
        return query.order_by(Invoice.created_at.desc())

    def create_invoice(self, data: InvoiceCreate, user: User) -> Invoice:
        if data.customer_id and not (
            self.db.query(Customer.id)
            .filter(Customer.id == data.customer_id, Customer.tenant_id == user.tenant_id)
            .first()
        ):
            raise HTTPException(status_code=404, detail="Customer not found")
        items = [i.model_dump() for i in data.items]
        totals = invoice_totals(items, data.discount, data.tax)
        invoice = Invoice(
            tenant_id=user.tenant_id,
            customer_id=data.customer_id,
            appointment_id=data.appointment_id,
            number=next_invoice_number(self.db, user.tenant_id),
            status=data.status,
            items=items,
            subtotal=totals["subtotal"],
            discount=data.discount,
            tax=data.tax,
            total=totals["total"],
            amount_paid=0,
            amount_due=totals["total"],
            due_date=data.due_date,
            notes=data.notes,
        )
        self.db.add(invoice)
        self.db.commit()
        self.db.refresh(invoice)
        logger.info(f"🧾 Invoice {invoice.number} created, total {invoice.total:.2f}")
        return invoice

    def update_invoice(self, invoice_id: str, data: InvoiceUpdate, user: User) -> Invoice:
        invoice = self._get(invoice_id, user.tenant_id)
        if invoice.status in ("PAID", "CANCELLED"):
            raise HTTPException(status_code=400, detail=f"Cannot update a {invoice.status} invoice")
        changes = data.model_dump(exclude_unset=True)
        if "items" in changes and changes["items"] is not None:
            invoice.items = changes.pop("items")
        for key, value in changes.items():
            if value is not None or key in ("due_date", "notes"):
                setattr(invoice, key, value)
        totals = invoice_totals(invoice.items, invoice.discount, invoice.tax)
        invoice.subtotal = totals["subtotal"]
        invoice.total = totals["total"]
        invoice.amount_due = round(max(invoice.total - (invoice.amount_paid or 0), 0), 2)
        self.db.commit()
        self.db.refresh(invoice)
        return invoice

    def send_invoice(self, invoice_id: str, user: User) -> Invoice:
        invoice = self._get(invoice_id, user.tenant_id)
        if invoice.status not in ("DRAFT", "PENDING"):
            raise HTTPException(status_code=400, detail=f"Cannot send a {invoice.status} invoice")
        invoice.status = "SENT"
        invoice.sent_at = datetime.utcnow()

        if invoice.customer_id:
            notifications = NotificationService(self.db)
            address = notifications.resolve_address(user.tenant_id, "CUSTOMER", invoice.customer_id, "EMAIL")
            if address:
                due = f" due {invoice.due_date:%d/%m/%Y}" if invoice.due_date else ""
                notifications.send(
                    tenant_id=user.tenant_id,
                    channel="EMAIL",
                    subject=f"Invoice {invoice.number}",
                    body=f"Invoice {invoice.number} for {invoice.total:.2f}{due}.",
                    recipient_type="CUSTOMER",
                    recipient_id=invoice.customer_id,
                    recipient_address=address,
                    category="PAYMENT",
                    reference_type="INVOICE",
                    reference_id=invoice.id,
                    commit=False,
                )
            else:
                logger.warning(f"⚠️ Invoice {invoice.number} has no customer email, not emailed")
        self.db.commit()
        self.db.refresh(invoice)
        return invoice

    def add_payment(self, invoice_id: str, data: InvoicePaymentRequest, user: User) -> Invoice:
        invoice = self._get(invoice_id, user.tenant_id)
        if invoice.status in ("PAID", "CANCELLED", "DRAFT"):
            raise HTTPException(status_code=400, detail=f"Cannot add a payment to a {invoice.status} invoice")
        PaymentService(self.db).create_payment(
            PaymentCreate(
                method=data.method,
                amount=data.amount,
                customer_id=invoice.customer_id,
                invoice_id=invoice.id,
                description=f"Invoice {invoice.number}",
            ),
            user,
        )
        self.db.refresh(invoice)
        if invoice.status == "PAID":
            trigger_event(self.db, user.tenant_id, "invoice.paid", {"id": invoice.id, "number": invoice.number})
        return invoice

    def cancel_invoice(self, invoice_id: str, user: User) -> Invoice:
        invoice = self._get(invoice_id, user.tenant_id)
        if invoice.status == "PAID":
            raise HTTPException(status_code=400, detail="Cannot cancel a paid invoice")
        invoice.status = "CANCELLED"
        invoice.cancelled_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(invoice)
        return invoice

    def delete_invoice(self, invoice_id: str, user: User) -> dict:
        invoice = self._get(invoice_id, user.tenant_id)
        if invoice.status != "DRAFT":
            raise HTTPException(status_code=400, detail="Only draft invoices can be deleted")
        self.db.delete(invoice)
        self.db.commit()
        return {"message": "Invoice deleted"}

    def overdue_query(self, user: User, now: Optional[datetime] = None):
        now = now or datetime.utcnow()
        return (
            self.db.query(Invoice)
            .filter(
                Invoice.tenant_id == user.tenant_id,
                Invoice.status.in_(OPEN_INVOICE_STATUSES + ("OVERDUE",)),
                Invoice.due_date.isnot(None),
                Invoice.due_date < now,
            )
            .order_by(Invoice.due_date)
        )


def mark_overdue_invoices(db: Session, tenant_id: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    try:
        query = db.query(Invoice).filter(
            Invoice.status.in_(OPEN_INVOICE_STATUSES),
            Invoice.due_date.isnot(None),
            Invoice.due_date < now,
        )
        if tenant_id:
            query = query.filter(Invoice.tenant_id == tenant_id)
        marked = query.update({Invoice.status: "OVERDUE"}, synchronize_session=False)
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Overdue invoice job failed: {e}")
        raise
    if marked:
        logger.info(f"⏰ Marked {marked} invoice(s) overdue")
    return {"marked": marked}
