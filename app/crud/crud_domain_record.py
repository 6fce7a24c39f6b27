from typing import List, Optional
from uuid import UUID
from sqlalchemy.orm import Session
from app.models.domain_record import DomainRecord, LIVE_STATUSES, FAILURE_STATUSES


def get_by_payment_intent(db: Session, payment_intent_id: str) -> Optional[DomainRecord]:
    return db.query(DomainRecord).filter(
        DomainRecord.payment_intent_id == payment_intent_id
    ).first()


def get_for_user(db: Session, user_id: UUID, domain: str) -> Optional[DomainRecord]:
    """Latest record for (user, domain), preferring one that still holds the domain."""
    records = (
        db.query(DomainRecord)
        .filter(DomainRecord.user_id == user_id, DomainRecord.domain == domain)
        .order_by(DomainRecord.created_at.desc())
        .all()
    )
    for record in records:
        if record.status in LIVE_STATUSES:
            return record
    return records[0] if records else None


def get_live_for_domain(db: Session, domain: str) -> Optional[DomainRecord]:
    return db.query(DomainRecord).filter(
        DomainRecord.domain == domain,
        DomainRecord.status.in_(LIVE_STATUSES),
    ).first()


def list_for_user(db: Session, user_id: UUID) -> List[DomainRecord]:
    return (
        db.query(DomainRecord)
        .filter(DomainRecord.user_id == user_id)
        .order_by(DomainRecord.created_at.desc())
        .all()
    )


def list_needing_attention(db: Session, skip: int = 0, limit: int = 100) -> List[DomainRecord]:
    return (
        db.query(DomainRecord)
        .filter(DomainRecord.status.in_(FAILURE_STATUSES))
        .order_by(DomainRecord.created_at.desc())
        .offset(skip)
        .limit(limit)
        .all()
    )


def append(db: Session, **fields) -> DomainRecord:
    db_obj = DomainRecord(**fields)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj


def update(db: Session, *, db_obj: DomainRecord, **fields) -> DomainRecord:
    for field, value in fields.items():
        setattr(db_obj, field, value)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
