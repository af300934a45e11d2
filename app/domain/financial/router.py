"""Financial router - Payments, transactions, invoices, cash flow and reports"""

from datetime import date, datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES, get_current_user, require_roles
from ...database import get_db
from ...models import User
from ...plan_limits import enforce_feature
from ...shared.pagination import Page, PageParams, page_params, paginate
from .reports import FinancialReportService
from .schemas import (
    CashFlowCreate,
    CashFlowResponse,
    DailyClosingRequest,
    InvoiceCreate,
    InvoicePaymentRequest,
    InvoiceResponse,
    InvoiceUpdate,
    PaymentCreate,
    PaymentResponse,
    PixPaymentCreate,
    RefundRequest,
    TransactionCreate,
    TransactionResponse,
)
from .service import InvoiceService, PaymentService, calculate_installments

router = APIRouter(prefix="/api/v1/financial", tags=["Financial"])

admin_only = require_roles(*MANAGEMENT_ROLES)


def report_user(current_user: User = Depends(admin_only)) -> User:
    enforce_feature(current_user.tenant, "financial_reports")
    return current_user


def get_payment_service(db: Session = Depends(get_db)) -> PaymentService:
    return PaymentService(db)


def get_invoice_service(db: Session = Depends(get_db)) -> InvoiceService:
    return InvoiceService(db)


def get_report_service(db: Session = Depends(get_db)) -> FinancialReportService:
    return FinancialReportService(db)


# ============================================================================
# PAYMENTS
# ============================================================================


@router.get("/payments", response_model=Page[PaymentResponse])
async def list_payments(
    status: Optional[str] = Query(None),
    method: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    customer_id: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return paginate(service.list_query(current_user, status, method, start, end, customer_id), params)


@router.post("/payments", response_model=PaymentResponse, status_code=201)
async def create_payment(
    data: PaymentCreate,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_payment(data, current_user)


@router.post("/payments/pix", response_model=PaymentResponse, status_code=201)
async def create_pix_payment(
    data: PixPaymentCreate,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_pix_payment(data, current_user)


@router.get("/payments/installments")
async def installment_options(
    amount: float = Query(..., gt=0),
    max_installments: int = Query(12, ge=1, le=24),
    current_user: User = Depends(get_current_user),
):
    return calculate_installments(amount, max_installments)


@router.get("/payments/{payment_id}", response_model=PaymentResponse)
async def get_payment(
    payment_id: str,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.get_payment(payment_id, current_user)


@router.post("/payments/{payment_id}/confirm-pix", response_model=PaymentResponse)
async def confirm_pix_payment(
    payment_id: str,
    current_user: User = Depends(get_current_user),
    service: PaymentService = Depends(get_payment_service),
):
    return service.confirm_pix_payment(payment_id, current_user)


@router.post("/payments/{payment_id}/refund", response_model=PaymentResponse)
async def refund_payment(
    payment_id: str,
    data: RefundRequest,
    current_user: User = Depends(admin_only),
    service: PaymentService = Depends(get_payment_service),
):
    return service.refund_payment(payment_id, data, current_user)


# ============================================================================
# TRANSACTIONS
# ============================================================================


@router.get("/transactions", response_model=Page[TransactionResponse])
async def list_transactions(
    type: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(admin_only),
    service: PaymentService = Depends(get_payment_service),
):
    return paginate(service.transactions_query(current_user, type, category, start, end), params)


@router.post("/transactions", response_model=TransactionResponse, status_code=201)
async def create_transaction(
    data: TransactionCreate,
    current_user: User = Depends(admin_only),
    service: PaymentService = Depends(get_payment_service),
):
    return service.create_transaction(data, current_user)


@router.get("/balance")
async def get_balance(
    current_user: User = Depends(admin_only),
    service: PaymentService = Depends(get_payment_service),
):
    return service.balance(current_user)


# ============================================================================
# INVOICES
# ============================================================================


@router.get("/invoices", response_model=Page[InvoiceResponse])
async def list_invoices(
    status: Optional[str] = Query(None),
    customer_id: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return paginate(service.list_query(current_user, status, customer_id), params)


@router.post("/invoices", response_model=InvoiceResponse, status_code=201)
async def create_invoice(
    data: InvoiceCreate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.create_invoice(data, current_user)


@router.get("/invoices/overdue", response_model=Page[InvoiceResponse])
async def overdue_invoices(
    params: PageParams = Depends(page_params),
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return paginate(service.overdue_query(current_user), params)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: str,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.get_invoice(invoice_id, current_user)


@router.patch("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: str,
    data: InvoiceUpdate,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.update_invoice(invoice_id, data, current_user)


@router.delete("/invoices/{invoice_id}")
async def delete_invoice(
    invoice_id: str,
    current_user: User = Depends(admin_only),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.delete_invoice(invoice_id, current_user)


@router.post("/invoices/{invoice_id}/send", response_model=InvoiceResponse)
async def send_invoice(
    invoice_id: str,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.send_invoice(invoice_id, current_user)


@router.post("/invoices/{invoice_id}/payments", response_model=InvoiceResponse)
async def add_invoice_payment(
    invoice_id: str,
    data: InvoicePaymentRequest,
    current_user: User = Depends(get_current_user),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.add_payment(invoice_id, data, current_user)


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceResponse)
async def cancel_invoice(
    invoice_id: str,
    current_user: User = Depends(admin_only),
    service: InvoiceService = Depends(get_invoice_service),
):
    return service.cancel_invoice(invoice_id, current_user)


# ============================================================================
# CASH FLOW AND CLOSINGS
# ============================================================================


@router.get("/cash-flow", response_model=list[CashFlowResponse])
async def list_cash_flow(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    include_projected: bool = Query(True),
    current_user: User = Depends(admin_only),
    service: FinancialReportService = Depends(get_report_service),
):
    return service.cash_flow_query(current_user, start, end, include_projected).all()


@router.post("/cash-flow", response_model=CashFlowResponse, status_code=201)
async def create_cash_flow(
    data: CashFlowCreate,
    current_user: User = Depends(admin_only),
    service: FinancialReportService = Depends(get_report_service),
):
    return service.create_cash_flow(data, current_user)


@router.get("/cash-flow/summary")
async def cash_flow_summary(
    start: datetime = Query(...),
    end: datetime = Query(...),
    include_projected: bool = Query(True),
    current_user: User = Depends(report_user),
    service: FinancialReportService = Depends(get_report_service),
):
    return service.cash_flow_summary(current_user, start, end, include_projected)


@router.post("/closings", status_code=201)
async def close_day(
    data: DailyClosingRequest,
    current_user: User = Depends(admin_only),
    service: FinancialReportService = Depends(get_report_service),
):
    closing = service.close_day(current_user, data.closing_date, data.notes)
    return service.get_closing(current_user, closing.date)


@router.get("/closings/{day}")
async def get_closing(
    day: date,
    current_user: User = Depends(admin_only),
    service: FinancialReportService = Depends(get_report_service),
):
    return service.get_closing(current_user, day)


# ============================================================================
# REPORTS
# ============================================================================


@router.get("/reports/revenue")
async def revenue_report(
    start: datetime = Query(...),
    end: datetime = Query(...),
    compare: bool = Query(False),
    current_user: User = Depends(report_user),
    service: FinancialReportService = Depends(get_report_service),
):
    return service.revenue_report(current_user, start, end, compare)


@router.get("/reports/trends")
async def revenue_trends(
    days: int = Query(30, ge=1, le=365),
    current_user: User = Depends(report_user),
    service: FinancialReportService = Depends(get_report_service),
):
    return service.revenue_trends(current_user, days)


@router.get("/reports/payments")
async def payment_stats(
    current_user: User = Depends(report_user),
    service: FinancialReportService = Depends(get_report_service),
):
    return service.payment_stats(current_user)


@router.get("/reports/invoices")
async def invoice_stats(
    current_user: User = Depends(report_user),
    service: FinancialReportService = Depends(get_report_service),
):
    return service.invoice_stats(current_user)
