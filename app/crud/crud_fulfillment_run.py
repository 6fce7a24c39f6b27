from typing import Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from app.core.exceptions import DuplicateFulfillment
from app.models.fulfillment_run import FulfillmentRun, SagaState


def get_by_payment_intent(db: Session, payment_intent_id: str) -> Optional[FulfillmentRun]:
    return db.query(FulfillmentRun).filter(
        FulfillmentRun.payment_intent_id == payment_intent_id
    ).first()


def claim(db: Session, **fields) -> FulfillmentRun:
    """Insert the run row; a second claim for the same payment intent raises DuplicateFulfillment."""
    db_obj = FulfillmentRun(state=SagaState.QUOTED.value, **fields)
    db.add(db_obj)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise DuplicateFulfillment(f"Payment intent already claimed: {fields.get('payment_intent_id')}") from e
    db.refresh(db_obj)
    return db_obj


def update(db: Session, *, db_obj: FulfillmentRun, **fields) -> FulfillmentRun:
    for field, value in fields.items():
        setattr(db_obj, field, value)
    db.add(db_obj)
    db.commit()
    db.refresh(db_obj)
    return db_obj
