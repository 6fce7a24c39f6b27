from typing import List, Optional
from uuid import UUID
from sqlalchemy.orm import Session
from app.models.voucher import Voucher, UserVoucher, UserVoucherStatus


def get_catalog_by_trigger(db: Session, trigger: str) -> Optional[Voucher]:
    return db.query(Voucher).filter(Voucher.auto_grant_on == trigger).first()


def get_user_voucher(db: Session, user_voucher_id: UUID) -> Optional[UserVoucher]:
    return db.query(UserVoucher).filter(UserVoucher.id == user_voucher_id).first()


def get_active_for_user(db: Session, user_id: UUID) -> List[UserVoucher]:
    return (
        db.query(UserVoucher)
        .filter(
            UserVoucher.user_id == user_id,
            UserVoucher.status == UserVoucherStatus.ACTIVE.value,
        )
        .order_by(UserVoucher.granted_at)
        .all()
    )


def create_user_voucher(db: Session, *, user_id: UUID, voucher_id: UUID,
                        metadata: Optional[dict] = None) -> UserVoucher:
    db_obj = UserVoucher(user_id=user_id, voucher_id=voucher_id, metadata_=metadata or {})
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def set_status(db: Session, *, db_obj: UserVoucher, status: str, **fields) -> UserVoucher:
    db_obj.status = status
    for field, value in fields.items():
        setattr(db_obj, field, value)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
