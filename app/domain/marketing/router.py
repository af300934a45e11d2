"""Marketing router - Campaigns, coupons, loyalty program and referrals"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...auth import MANAGEMENT_ROLES
from ...database import get_db
from ...models import User
from ...plan_limits import require_feature
from ...shared.pagination import Page, PageParams, page_params, paginate
from ...task_queue import enqueue
from .loyalty import LoyaltyService
from .schemas import (
    AdjustPointsRequest,
    CampaignCreate,
    CampaignResponse,
    CampaignUpdate,
    CouponCreate,
    CouponRedeemRequest,
    CouponResponse,
    CouponUpdate,
    CouponValidateRequest,
    CouponValidation,
    EarnPointsRequest,
    LoyaltyProgramCreate,
    LoyaltyProgramResponse,
    LoyaltyProgramUpdate,
    LoyaltyTransactionResponse,
    RedeemPointsRequest,
    RedeemPointsResponse,
    RedemptionResponse,
    ReferralComplete,
    ReferralCreate,
    ReferralProgramCreate,
    ReferralProgramResponse,
    ReferralProgramUpdate,
    ReferralResponse,
)
from .service import MarketingService

router = APIRouter(prefix="/api/v1/marketing", tags=["Marketing"])

marketing_user = require_feature("marketing")
loyalty_user = require_feature("loyalty")


def marketing_manager(current_user: User = Depends(marketing_user)) -> User:
    if current_user.role not in MANAGEMENT_ROLES:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return current_user


def loyalty_manager(current_user: User = Depends(loyalty_user)) -> User:
    if current_user.role not in MANAGEMENT_ROLES:
        raise HTTPException(status_code=403, detail="Insufficient permissions")
    return current_user


def get_marketing_service(db: Session = Depends(get_db)) -> MarketingService:
    return MarketingService(db)


def get_loyalty_service(db: Session = Depends(get_db)) -> LoyaltyService:
    return LoyaltyService(db)


@router.get("/stats")
async def marketing_stats(
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.stats(current_user)


# ============================================================================
# CAMPAIGNS
# ============================================================================


@router.get("/campaigns", response_model=Page[CampaignResponse])
async def list_campaigns(
    status: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return paginate(service.campaigns_query(current_user, status, type), params)


@router.post("/campaigns", response_model=CampaignResponse, status_code=201)
async def create_campaign(
    data: CampaignCreate,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.create_campaign(data, current_user)


@router.get("/campaigns/{campaign_id}", response_model=CampaignResponse)
async def get_campaign(
    campaign_id: str,
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.get_campaign(campaign_id, current_user)


@router.patch("/campaigns/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_id: str,
    data: CampaignUpdate,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.update_campaign(campaign_id, data, current_user)


@router.post("/campaigns/{campaign_id}/start", response_model=CampaignResponse)
async def start_campaign(
    campaign_id: str,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    campaign = service.start_campaign(campaign_id, current_user)
    await enqueue("process_notifications_task")
    return campaign


@router.post("/campaigns/{campaign_id}/pause", response_model=CampaignResponse)
async def pause_campaign(
    campaign_id: str,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.pause_campaign(campaign_id, current_user)


@router.post("/campaigns/{campaign_id}/complete", response_model=CampaignResponse)
async def complete_campaign(
    campaign_id: str,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.complete_campaign(campaign_id, current_user)


@router.delete("/campaigns/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.delete_campaign(campaign_id, current_user)


# ============================================================================
# COUPONS
# ============================================================================


@router.get("/coupons", response_model=Page[CouponResponse])
async def list_coupons(
    status: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return paginate(service.coupons_query(current_user, status), params)


@router.post("/coupons", response_model=CouponResponse, status_code=201)
async def create_coupon(
    data: CouponCreate,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.create_coupon(data, current_user)


@router.post("/coupons/validate", response_model=CouponValidation)
async def validate_coupon(
    data: CouponValidateRequest,
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.validate_request(data, current_user)


@router.post("/coupons/redeem", response_model=RedemptionResponse, status_code=201)
async def redeem_coupon(
    data: CouponRedeemRequest,
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.redeem_coupon(data, current_user)


@router.get("/coupons/{coupon_id}", response_model=CouponResponse)
async def get_coupon(
    coupon_id: str,
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.get_coupon(coupon_id, current_user)


@router.patch("/coupons/{coupon_id}", response_model=CouponResponse)
async def update_coupon(
    coupon_id: str,
    data: CouponUpdate,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.update_coupon(coupon_id, data, current_user)


@router.post("/coupons/{coupon_id}/deactivate", response_model=CouponResponse)
async def deactivate_coupon(
    coupon_id: str,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.deactivate_coupon(coupon_id, current_user)


# ============================================================================
# LOYALTY
# ============================================================================


@router.get("/loyalty/program", response_model=Optional[LoyaltyProgramResponse])
async def get_loyalty_program(
    current_user: User = Depends(loyalty_user),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return service.active_program(current_user.tenant_id)


@router.post("/loyalty/program", response_model=LoyaltyProgramResponse, status_code=201)
async def create_loyalty_program(
    data: LoyaltyProgramCreate,
    current_user: User = Depends(loyalty_manager),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return service.create_program(current_user.tenant_id, data)


@router.patch("/loyalty/program/{program_id}", response_model=LoyaltyProgramResponse)
async def update_loyalty_program(
    program_id: str,
    data: LoyaltyProgramUpdate,
    current_user: User = Depends(loyalty_manager),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return service.update_program(current_user.tenant_id, program_id, data)


@router.post("/loyalty/earn", response_model=LoyaltyTransactionResponse, status_code=201)
async def earn_points(
    data: EarnPointsRequest,
    current_user: User = Depends(loyalty_user),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return service.earn_points(
        current_user.tenant_id,
        data.customer_id,
        data.points,
        data.description,
        data.reference_type,
        data.reference_id,
    )


@router.post("/loyalty/redeem", response_model=RedeemPointsResponse)
async def redeem_points(
    data: RedeemPointsRequest,
    current_user: User = Depends(loyalty_user),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return service.redeem_points(current_user.tenant_id, data.customer_id, data.points, data.description)


@router.post("/loyalty/adjust", response_model=LoyaltyTransactionResponse)
async def adjust_points(
    data: AdjustPointsRequest,
    current_user: User = Depends(loyalty_manager),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return service.adjust_points(current_user.tenant_id, data.customer_id, data.points, data.reason)


@router.get("/loyalty/transactions", response_model=Page[LoyaltyTransactionResponse])
async def list_loyalty_transactions(
    customer_id: Optional[str] = Query(None),
    type: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(loyalty_user),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return paginate(service.transactions_query(current_user.tenant_id, customer_id, type), params)


@router.get("/loyalty/customers/{customer_id}")
async def customer_loyalty(
    customer_id: str,
    current_user: User = Depends(loyalty_user),
    service: LoyaltyService = Depends(get_loyalty_service),
):
    return service.customer_summary(current_user.tenant_id, customer_id)


# ============================================================================
# REFERRALS
# ============================================================================


@router.get("/referrals/program", response_model=Optional[ReferralProgramResponse])
async def get_referral_program(
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.active_referral_program(current_user.tenant_id)


@router.post("/referrals/program", response_model=ReferralProgramResponse, status_code=201)
async def create_referral_program(
    data: ReferralProgramCreate,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.create_referral_program(data, current_user)


@router.patch("/referrals/program/{program_id}", response_model=ReferralProgramResponse)
async def update_referral_program(
    program_id: str,
    data: ReferralProgramUpdate,
    current_user: User = Depends(marketing_manager),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.update_referral_program(program_id, data, current_user)


@router.get("/referrals", response_model=Page[ReferralResponse])
async def list_referrals(
    status: Optional[str] = Query(None),
    referrer_id: Optional[str] = Query(None),
    params: PageParams = Depends(page_params),
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return paginate(service.referrals_query(current_user, status, referrer_id), params)


@router.post("/referrals", response_model=ReferralResponse, status_code=201)
async def create_referral(
    data: ReferralCreate,
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.create_referral(data.referrer_id, current_user)


@router.post("/referrals/complete", response_model=ReferralResponse)
async def complete_referral(
    data: ReferralComplete,
    current_user: User = Depends(marketing_user),
    service: MarketingService = Depends(get_marketing_service),
):
    return service.complete_referral(data.code, data.referee_id, current_user)
