"""
System wiring and request dependencies
"""

from decimal import Decimal
from typing import Optional

from ..config import FuturaConfig, get_config
from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..accounts import AccountManager
from ..notifications import NotificationEngine
from ..reservations import ReservationManager
from ..schedules import ScheduleGenerator
from ..penalties import PenaltyCalculator
from ..contracts import ContractManager
from ..plan_changes import PlanChangeReconciler
from ..payments import StoragePaymentRecorder, WalkInPaymentService
from ..complaints import ComplaintManager, ServiceRequestManager
from ..inquiries import InquiryManager, RateLimiter
from ..tours import TourBookingManager


class FuturaSystem:
    """Back office with all components initialized"""

    def __init__(self, config: Optional[FuturaConfig] = None, storage: Optional[StorageInterface] = None):
        self.config = config or get_config()
        cfg = self.config

        # Initialize storage
        self.storage = storage or create_storage(cfg.storage_backend, cfg.database_path)

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=cfg.enable_audit_logging)
        self.account_manager = AccountManager(self.storage, self.audit_trail)
        self.notification_engine = NotificationEngine(
            self.storage, self.account_manager, enabled=cfg.enable_notifications
        )
        self.reservation_manager = ReservationManager(
            self.storage, self.audit_trail, self.notification_engine
        )

        # Contracts and schedules
        self.schedule_generator = ScheduleGenerator(grace_period_days=cfg.schedule_grace_period_days)
        self.penalty_calculator = PenaltyCalculator(
            grace_period_days=cfg.penalty_grace_period_days,
            default_rate=Decimal(cfg.default_penalty_rate)
        )
        self.contract_manager = ContractManager(
            self.storage, self.audit_trail, self.reservation_manager, self.notification_engine,
            schedule_generator=self.schedule_generator,
            min_plan_months=cfg.min_plan_months,
            max_plan_months=cfg.max_plan_months,
            downpayment_percentage=Decimal(cfg.downpayment_percentage),
            bank_financing_percentage=Decimal(cfg.bank_financing_percentage)
        )
        self.plan_change_reconciler = PlanChangeReconciler(
            self.storage, self.contract_manager, self.audit_trail
        )

        # Payments
        self.payment_recorder = StoragePaymentRecorder(self.storage, self.contract_manager)
        self.payment_service = WalkInPaymentService(
            self.storage, self.contract_manager, self.payment_recorder, self.penalty_calculator,
            self.audit_trail, self.notification_engine,
            min_partial_payment_ratio=Decimal(cfg.min_partial_payment_ratio),
            persist_penalty_on_read=cfg.persist_penalty_on_read
        )

        # Homeowner services and public inquiries
        self.complaint_manager = ComplaintManager(self.storage, self.contract_manager, self.notification_engine)
        self.service_request_manager = ServiceRequestManager(
            self.storage, self.contract_manager, self.notification_engine
        )
        self.rate_limiter = RateLimiter(
            self.storage,
            max_requests=cfg.inquiry_rate_limit,
            window_seconds=cfg.inquiry_rate_window_seconds
        )
        self.inquiry_manager = InquiryManager(
            self.storage, self.notification_engine, self.rate_limiter,
            duplicate_window_hours=cfg.inquiry_duplicate_window_hours
        )
        self.tour_manager = TourBookingManager(
            self.storage, self.audit_trail, self.account_manager, self.notification_engine
        )

    def close(self) -> None:
        self.storage.close()


# Global system instance, built on first use
futura_system: Optional[FuturaSystem] = None


def get_system() -> FuturaSystem:
    global futura_system
    if futura_system is None:
        futura_system = FuturaSystem()
    return futura_system
