from app.db.base_class import Base
from app.models.user import User
from app.models.portfolio import Portfolio
from app.models.domain_record import DomainRecord
from app.models.domain_route import DomainRoute
from app.models.voucher import Voucher, UserVoucher
from app.models.fulfillment_run import FulfillmentRun
