from typing import Any, List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.api import deps
from app.models.user import User
from app.schemas.voucher import UserVoucher, VoucherGrantRequest, VoucherGrantResponse
from app.services import vouchers

router = APIRouter()


@router.get("/my", response_model=List[UserVoucher])
def my_vouchers(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_active_user),
) -> Any:
    return vouchers.get_active_vouchers(db, current_user.id)


@router.post("/grant", response_model=VoucherGrantResponse, dependencies=[Depends(deps.require_internal_key)])
def grant_voucher(body: VoucherGrantRequest, db: Session = Depends(deps.get_db)) -> Any:
    """Internal hook for account events (first subscription, anniversary). Re-grants are no-ops."""
    granted = vouchers.grant_voucher(db, body.user_id, body.trigger, body.metadata)
    return VoucherGrantResponse(granted=granted is not None, user_voucher_id=granted.id if granted else None)
