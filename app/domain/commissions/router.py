"""Commission router - Rules, configs, entries, payments, goals and reports"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES
from ...database import get_db
from ...models import User
from ...plan_limits import require_feature
from ...shared.pagination import Page, PageParams, page_params, paginate
from .schemas import (
    AdjustmentRequest,
    CalculateRequest,
    CancelEntryRequest,
    EntryCreate,
    EntryIds,
    EntryResponse,
    GoalCreate,
    GoalResponse,
    GoalUpdate,
    PaymentCreate,
    PaymentResponse,
    ProfessionalConfigCreate,
    ProfessionalConfigResponse,
    ProfessionalConfigUpdate,
    RuleCreate,
    RuleResponse,
    RuleUpdate,
)
from .service import CommissionService

router = APIRouter(prefix="/api/v1/commissions", tags=["Commissions"])

feature_user = require_feature("commissions")


def manager(current_user: User = Depends(feature_user)) -> User:
    if current_user.role not in MANAGEMENT_ROLES:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return current_user


def get_commission_service(db: Session = Depends(get_db)) -> CommissionService:
    return CommissionService(db)


# ============================================================================
# RULES
# ============================================================================


@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(
    trigger: Optional[str] = Query(None),
    active_only: bool = Query(False),
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.list_rules(current_user, trigger, active_only)


@router.post("/rules", response_model=RuleResponse, status_code=201)
async def create_rule(
    data: RuleCreate,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.create_rule(data, current_user)


@router.get("/rules/{rule_id}", response_model=RuleResponse)
async def get_rule(
    rule_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.get_rule(rule_id, current_user)


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: str,
    data: RuleUpdate,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.update_rule(rule_id, data, current_user)


@router.delete("/rules/{rule_id}")
async def delete_rule(
    rule_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.delete_rule(rule_id, current_user)


# ============================================================================
# PROFESSIONAL CONFIGS
# ============================================================================


@router.get("/configs", response_model=list[ProfessionalConfigResponse])
async def list_configs(
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.list_configs(current_user)


@router.post("/configs", response_model=ProfessionalConfigResponse, status_code=201)
async def create_config(
    data: ProfessionalConfigCreate,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.create_config(data, current_user)


@router.get("/configs/{professional_id}", response_model=ProfessionalConfigResponse)
async def get_config(
    professional_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.get_config(professional_id, current_user)


@router.patch("/configs/{professional_id}", response_model=ProfessionalConfigResponse)
async def update_config(
    professional_id: str,
    data: ProfessionalConfigUpdate,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.update_config(professional_id, data, current_user)


@router.delete("/configs/{professional_id}")
async def delete_config(
    professional_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.delete_config(professional_id, current_user)


# ============================================================================
# ENTRIES
# ============================================================================


@router.post("/calculate")
async def calculate(
    data: CalculateRequest,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.calculate(data, current_user)


@router.get("/entries", response_model=Page[EntryResponse])
async def list_entries(
    professional_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(feature_user),
    service: CommissionService = Depends(get_commission_service),
):
    return paginate(service.entries_query(current_user, professional_id, status, start, end), params)


@router.post("/entries", response_model=EntryResponse, status_code=201)
async def create_entry(
    data: EntryCreate,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.create_entry(data, current_user)


@router.post("/entries/approve", response_model=list[EntryResponse])
async def approve_entries(
    data: EntryIds,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.approve(data.entry_ids, current_user)


@router.get("/entries/{entry_id}", response_model=EntryResponse)
async def get_entry(
    entry_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.get_entry(entry_id, current_user)


@router.post("/entries/{entry_id}/adjust", response_model=EntryResponse)
async def adjust_entry(
    entry_id: str,
    data: AdjustmentRequest,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.adjust(entry_id, data, current_user)


@router.post("/entries/{entry_id}/cancel", response_model=EntryResponse)
async def cancel_entry(
    entry_id: str,
    data: CancelEntryRequest,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.cancel_entry(entry_id, data.reason, current_user)


@router.post("/entries/{entry_id}/hold", response_model=EntryResponse)
async def hold_entry(
    entry_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.hold(entry_id, current_user)


@router.post("/entries/{entry_id}/release", response_model=EntryResponse)
async def release_entry(
    entry_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.release(entry_id, current_user)


# ============================================================================
# PAYMENTS
# ============================================================================


@router.get("/payments", response_model=Page[PaymentResponse])
async def list_payments(
    professional_id: Optional[str] = Query(None),
    status: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return paginate(service.list_payments(current_user, professional_id, status), params)


@router.post("/payments", response_model=PaymentResponse, status_code=201)
async def create_payment(
    data: PaymentCreate,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.create_payment(data, current_user)


@router.post("/payments/{payment_id}/process", response_model=PaymentResponse)
async def process_payment(
    payment_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.process_payment(payment_id, current_user)


@router.post("/payments/{payment_id}/cancel", response_model=PaymentResponse)
async def cancel_payment(
    payment_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.cancel_payment(payment_id, current_user)


# ============================================================================
# GOALS
# ============================================================================


@router.get("/goals", response_model=list[GoalResponse])
async def list_goals(
    professional_id: Optional[str] = Query(None),
    active_only: bool = Query(False),
    current_user: User = Depends(feature_user),
    service: CommissionService = Depends(get_commission_service),
):
    return service.list_goals(current_user, professional_id, active_only)


@router.post("/goals", response_model=GoalResponse, status_code=201)
async def create_goal(
    data: GoalCreate,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.create_goal(data, current_user)


@router.patch("/goals/{goal_id}", response_model=GoalResponse)
async def update_goal(
    goal_id: str,
    data: GoalUpdate,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.update_goal(goal_id, data, current_user)


@router.delete("/goals/{goal_id}")
async def delete_goal(
    goal_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.delete_goal(goal_id, current_user)


@router.get("/goals/{goal_id}/progress")
async def goal_progress(
    goal_id: str,
    current_user: User = Depends(feature_user),
    service: CommissionService = Depends(get_commission_service),
):
    return service.goal_progress(goal_id, current_user)


@router.post("/goals/{goal_id}/check")
async def check_goal(
    goal_id: str,
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.check_goal(goal_id, current_user)


# ============================================================================
# SUMMARY AND REPORTS
# ============================================================================


@router.get("/summary")
async def commission_summary(
    professional_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: User = Depends(feature_user),
    service: CommissionService = Depends(get_commission_service),
):
    return service.summary(current_user, professional_id, start, end)


@router.get("/report")
async def commission_report(
    start: datetime = Query(...),
    end: datetime = Query(...),
    current_user: User = Depends(manager),
    service: CommissionService = Depends(get_commission_service),
):
    return service.report(current_user, start, end)
