import logging

from app.celery_app import celery_app
from app.db.session import SessionLocal
from app.services.fulfillment import FulfillmentSaga
from app.services.hosting_client import HostingDomainClient
from app.services.registrar_client import build_registrar_client

logger = logging.getLogger("pfdomains.fulfillment")


@celery_app.task(bind=True, acks_late=True)
def fulfill_domain_task(self, domain: str, user_id: str, payment_intent_id: str,
                        voucher_id: str = None, portfolio_id: str = None):
    """
    Background task: deliver a paid domain.

    Stage failures are recorded on the DomainRecord by the saga itself; only
    infrastructure errors (database down, bad metadata) reach this handler.
    The task is not retried automatically: a claimed run is never re-entered.
    """
    db = SessionLocal()
    try:
        saga = FulfillmentSaga(db, registrar=build_registrar_client(), hosting=HostingDomainClient())
        record = saga.handle_fulfillment(
            domain,
            user_id,
            payment_intent_id,
            voucher_id=voucher_id,
            portfolio_id=portfolio_id,
        )
        if record is None:
            return {"status": "claimed_elsewhere", "payment_intent_id": payment_intent_id}
        return {"status": record.status, "domain": record.domain, "payment_intent_id": payment_intent_id}
    except Exception as e:
        logger.error(
            "Fulfillment task crashed for %s: %s", payment_intent_id, e,
            exc_info=True, extra={"domain": domain, "payment_intent_id": payment_intent_id},
        )
        raise
    finally:
        db.close()
