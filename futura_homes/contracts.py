"""
Contracts Module

Contract-to-sell creation from approved reservations, contract lookups with
schedule statistics, and the periodic overdue refresh of installments.
"""

import uuid
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone, date
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .schedules import PaymentSchedule, PaymentStatus, ScheduleGenerator, add_months, refresh_overdue
from .reservations import ReservationManager, ReservationStatus, CONTRACTS_TABLE
from .notifications import NotificationEngine, NotificationTemplates
from .exceptions import ValidationError, NotFoundError, BusinessRuleError
from .logging_config import get_logger, log_action


logger = get_logger("futura.contracts")

HUNDRED = Decimal('100')


class ContractStatus(Enum):
    """Contract lifecycle states"""
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class DownpaymentStatus(Enum):
    """State of the amortized downpayment"""
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DEFAULTED = "defaulted"


@dataclass
class Contract(StorageRecord):
    """Contract to sell created from an approved reservation"""
    contract_number: str
    reservation_id: str
    property_id: str
    property_title: str
    property_price: Decimal
    client_name: str
    client_email: str
    client_phone: str
    client_address: str
    total_contract_price: Decimal
    downpayment_percentage: Decimal
    downpayment_total: Decimal
    reservation_fee_paid: Decimal
    remaining_downpayment: Decimal      # Principal amortized by the schedule
    payment_plan_months: int
    monthly_installment: Decimal
    bank_financing_percentage: Decimal
    bank_financing_amount: Decimal
    downpayment_status: DownpaymentStatus
    total_paid_amount: Decimal
    remaining_balance: Decimal          # Unpaid part of remaining_downpayment
    contract_status: ContractStatus
    contract_signed_date: date
    first_installment_date: date
    final_installment_date: Optional[date] = None
    user_id: Optional[str] = None

    @property
    def contract_id(self) -> str:
        return self.id

    @property
    def is_active(self) -> bool:
        return self.contract_status == ContractStatus.ACTIVE


@dataclass
class ContractTransfer(StorageRecord):
    """Change of contract ownership, kept so the transfer can be reverted"""
    contract_id: str
    original_client_name: str
    original_client_email: str
    original_client_phone: str
    original_client_address: str
    new_client_name: str
    new_client_email: str
    new_client_phone: str
    new_client_address: str
    relationship: str
    transfer_reason: str
    transferred_at: datetime
    reservation_id: Optional[str] = None
    original_user_id: Optional[str] = None
    new_user_id: Optional[str] = None
    transfer_notes: Optional[str] = None
    transferred_by: Optional[str] = None


def contract_statistics(contract: Contract, schedules: List[PaymentSchedule]) -> Dict[str, Any]:
    """Installment counts and downpayment progress for a contract"""
    total_paid = sum((s.paid_amount for s in schedules), Decimal('0'))
    if contract.remaining_downpayment > 0:
        progress = int((total_paid / contract.remaining_downpayment * HUNDRED).quantize(Decimal('1'), rounding=ROUND_HALF_UP))
    else:
        progress = 100

    return {
        "total_installments": len(schedules),
        "paid_installments": sum(1 for s in schedules if s.payment_status == PaymentStatus.PAID),
        "pending_installments": sum(1 for s in schedules if s.payment_status == PaymentStatus.PENDING),
        "overdue_installments": sum(1 for s in schedules if s.is_overdue),
        "payment_progress_percent": progress,
    }


def next_payment(schedules: List[PaymentSchedule]) -> Optional[PaymentSchedule]:
    """Lowest-numbered pending installment"""
    pending = [s for s in schedules if s.payment_status == PaymentStatus.PENDING]
    return min(pending, key=lambda s: s.installment_number) if pending else None


class ContractManager:
    """
    Manages contracts to sell and their installment schedules
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        reservation_manager: ReservationManager,
        notification_engine: NotificationEngine,
        schedule_generator: Optional[ScheduleGenerator] = None,
        min_plan_months: int = 1,
        max_plan_months: int = 60,
        downpayment_percentage: Decimal = Decimal('10.00'),
        bank_financing_percentage: Decimal = Decimal('90.00')
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.reservation_manager = reservation_manager
        self.notification_engine = notification_engine
        self.schedule_generator = schedule_generator or ScheduleGenerator()
        self.min_plan_months = min_plan_months
        self.max_plan_months = max_plan_months
        self.downpayment_percentage = Decimal(str(downpayment_percentage))
        self.bank_financing_percentage = Decimal(str(bank_financing_percentage))

        self.contracts_table = CONTRACTS_TABLE
        self.schedules_table = "contract_payment_schedules"
        self.transfers_table = "contract_transfer_history"

    def check_plan_months(self, months: Any) -> int:
        """Validate a requested plan length against the configured bounds"""
        if months is None or isinstance(months, bool):
            raise ValidationError("Payment plan months is required", error="Missing required fields")
        try:
            months = int(months)
        except (TypeError, ValueError):
            raise ValidationError("Payment plan months must be a whole number", error="Invalid payment plan")
        if months < self.min_plan_months or months > self.max_plan_months:
            raise ValidationError(
                f"Payment plan must be between {self.min_plan_months} and {self.max_plan_months} months",
                error="Invalid payment plan"
            )
        return months

    def create_contract(
        self,
        reservation_id: str,
        payment_plan_months: int,
        created_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Create a contract to sell and its installment schedule.

        Args:
            reservation_id: Approved reservation to convert
            payment_plan_months: Number of monthly installments for the downpayment
            created_by: Staff user performing the action

        Returns:
            Dict with the new contract and its payment schedules

        Raises:
            ValidationError: missing reservation id or plan months out of range
            NotFoundError: reservation missing or not approved
            BusinessRuleError: a contract already exists for the reservation
        """
        if not reservation_id:
            raise ValidationError(
                "Please provide reservation_id and payment_plan_months",
                error="Missing required fields"
            )
        months = self.check_plan_months(payment_plan_months)

        reservation = self.reservation_manager.get_reservation(reservation_id)
        if not reservation or reservation.status != ReservationStatus.APPROVED:
            raise NotFoundError("Reservation not found or not approved", error="Reservation not found")

        existing = self.get_contract_by_reservation(reservation_id)
        if existing:
            raise BusinessRuleError(
                f"Contract {existing.contract_number} already exists for this reservation",
                error="Contract already exists"
            )

        price = reservation.property_price
        fee = reservation.reservation_fee
        downpayment_total = price * self.downpayment_percentage / HUNDRED
        remaining_downpayment = downpayment_total - fee
        monthly_installment = remaining_downpayment / Decimal(months)

        now = datetime.now(timezone.utc)
        today = date.today()
        first_installment = add_months(today, 1)
        tracking_part = (
            reservation.tracking_number.replace("TRK-", "")
            if reservation.tracking_number else reservation.id[:8].upper()
        )

        contract = Contract(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            contract_number=f"CTS-{today.year}-{tracking_part}",
            reservation_id=reservation.id,
            property_id=reservation.property_id,
            property_title=reservation.property_title,
            property_price=price,
            client_name=reservation.client_name,
            client_email=reservation.client_email,
            client_phone=reservation.client_phone,
            client_address=reservation.client_address,
            total_contract_price=price,
            downpayment_percentage=self.downpayment_percentage,
            downpayment_total=downpayment_total,
            reservation_fee_paid=fee,
            remaining_downpayment=remaining_downpayment,
            payment_plan_months=months,
            monthly_installment=monthly_installment,
            bank_financing_percentage=self.bank_financing_percentage,
            bank_financing_amount=price * self.bank_financing_percentage / HUNDRED,
            downpayment_status=DownpaymentStatus.IN_PROGRESS if remaining_downpayment > 0 else DownpaymentStatus.COMPLETED,
            total_paid_amount=Decimal('0'),
            remaining_balance=remaining_downpayment,
            contract_status=ContractStatus.ACTIVE,
            contract_signed_date=today,
            first_installment_date=first_installment,
            final_installment_date=add_months(first_installment, months - 1),
            user_id=reservation.user_id
        )
        self.save_contract(contract)

        schedules: List[PaymentSchedule] = []
        if remaining_downpayment > 0:
            try:
                schedules = self.schedule_generator.generate(
                    contract.id, remaining_downpayment, months, first_installment
                )
                self.save_schedules(schedules)
            except Exception as e:
                self.storage.delete(self.contracts_table, contract.id)
                try:
                    self.audit_trail.log_event(
                        event_type=AuditEventType.CONTRACT_CREATION_ROLLED_BACK,
                        entity_type="contract",
                        entity_id=contract.id,
                        metadata={"reservation_id": reservation.id, "error": str(e)},
                        user_id=created_by
                    )
                except Exception as audit_error:
                    logger.warning(f"Audit write for contract creation rollback failed: {audit_error}")
                log_action(
                    logger, "error", f"Schedule creation failed, contract {contract.contract_number} removed: {e}",
                    user_id=created_by, action="create_contract", resource=contract.id
                )
                raise

        self.audit_trail.log_event(
            event_type=AuditEventType.CONTRACT_CREATED,
            entity_type="contract",
            entity_id=contract.id,
            metadata={
                "contract_number": contract.contract_number,
                "reservation_id": reservation.id,
                "remaining_downpayment": remaining_downpayment,
                "payment_plan_months": months,
                "monthly_installment": monthly_installment
            },
            user_id=created_by
        )
        log_action(
            logger, "info", f"Contract {contract.contract_number} created",
            user_id=created_by, action="create_contract", resource=contract.id,
            extra={"payment_plan_months": months, "schedules": len(schedules)}
        )
        self.notification_engine.notify_safely(
            self.notification_engine.notify_role,
            NotificationTemplates.contract_created(
                contract.contract_number, contract.client_name, contract_id=contract.id
            )
        )

        return {"contract": contract, "payment_schedules": schedules}

    def get_contract(self, contract_id: str) -> Optional[Contract]:
        data = self.storage.load(self.contracts_table, contract_id)
        return Contract.from_dict(data) if data else None

    def require_contract(self, contract_id: str) -> Contract:
        contract = self.get_contract(contract_id)
        if not contract:
            raise NotFoundError("Contract not found", error="Contract not found")
        return contract

    def get_contract_details(self, contract_id: str) -> Dict[str, Any]:
        """Contract with its schedules, statistics and next pending installment"""
        contract = self.require_contract(contract_id)
        schedules = self.get_schedules(contract.id)
        return {
            "contract": contract,
            "payment_schedules": schedules,
            "statistics": contract_statistics(contract, schedules),
            "next_payment": next_payment(schedules),
        }

    def list_contracts(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        contract_number: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """
        Contracts newest first, each with schedules and statistics.

        contract_number matches as a case-insensitive substring.
        """
        filters = {}
        if user_id:
            filters["user_id"] = user_id
        if status:
            try:
                filters["contract_status"] = ContractStatus(status).value
            except ValueError:
                raise ValidationError(f"Invalid contract status: {status}", error="Invalid status")

        contracts = [Contract.from_dict(data) for data in self.storage.find(self.contracts_table, filters)]
        if contract_number:
            needle = contract_number.lower()
            contracts = [c for c in contracts if needle in c.contract_number.lower()]
        contracts.sort(key=lambda c: c.created_at, reverse=True)

        results = []
        for contract in contracts:
            schedules = self.get_schedules(contract.id)
            results.append({
                "contract": contract,
                "payment_schedules": schedules,
                "statistics": contract_statistics(contract, schedules),
                "next_payment": next_payment(schedules),
            })
        return results

    def get_contract_by_reservation(self, reservation_id: str) -> Optional[Contract]:
        if not reservation_id:
            raise ValidationError("reservation_id is required", error="Missing reservation ID")
        matches = self.storage.find(self.contracts_table, {"reservation_id": reservation_id})
        return Contract.from_dict(matches[0]) if matches else None

    def get_schedules(self, contract_id: str) -> List[PaymentSchedule]:
        """Installments of a contract ordered by installment number"""
        schedules = [
            PaymentSchedule.from_dict(data)
            for data in self.storage.find(self.schedules_table, {"contract_id": contract_id})
        ]
        schedules.sort(key=lambda s: s.installment_number)
        return schedules

    def get_schedule(self, schedule_id: str) -> Optional[PaymentSchedule]:
        data = self.storage.load(self.schedules_table, schedule_id)
        return PaymentSchedule.from_dict(data) if data else None

    def require_schedule(self, schedule_id: str) -> PaymentSchedule:
        schedule = self.get_schedule(schedule_id)
        if not schedule:
            raise NotFoundError("Payment schedule not found", error="Schedule not found")
        return schedule

    def save_contract(self, contract: Contract) -> None:
        self.storage.save(self.contracts_table, contract.id, contract.to_dict())

    def save_schedule(self, schedule: PaymentSchedule) -> None:
        self.storage.save(self.schedules_table, schedule.id, schedule.to_dict())

    def save_schedules(self, schedules: List[PaymentSchedule]) -> None:
        self.storage.save_many(self.schedules_table, {s.id: s.to_dict() for s in schedules})

    def delete_schedules(self, schedule_ids: List[str]) -> int:
        return self.storage.delete_many(self.schedules_table, schedule_ids)

    def transfer_contract(
        self,
        contract_id: str,
        new_client_name: str,
        new_client_email: str,
        relationship: str,
        transfer_reason: str,
        new_client_phone: Optional[str] = None,
        new_client_address: Optional[str] = None,
        new_user_id: Optional[str] = None,
        transfer_notes: Optional[str] = None,
        transferred_by: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Hand an active contract over to a new client.

        The contract's client details are replaced and the previous ones are
        kept in the transfer history. When new_user_id is given the contract
        and its reservation move to that account as well.

        Returns:
            Dict with the updated contract, the transfer record and the original client

        Raises:
            ValidationError: a required field is missing
            NotFoundError: contract missing
            BusinessRuleError: contract is cancelled or completed
        """
        required = (contract_id, new_client_name, new_client_email, relationship, transfer_reason)
        if any(not value or not str(value).strip() for value in required):
            raise ValidationError(
                "contract_id, new_client_name, new_client_email, relationship and transfer_reason are required",
                error="Missing required fields"
            )
        contract = self.require_contract(contract_id)
        if contract.contract_status in (ContractStatus.CANCELLED, ContractStatus.COMPLETED):
            raise BusinessRuleError(
                f"Cannot transfer a {contract.contract_status.value} contract",
                error="Invalid contract status"
            )

        now = datetime.now(timezone.utc)
        original_client = {
            "client_name": contract.client_name,
            "client_email": contract.client_email,
            "client_phone": contract.client_phone,
            "client_address": contract.client_address,
            "user_id": contract.user_id,
        }
        transfer = ContractTransfer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            contract_id=contract.id,
            reservation_id=contract.reservation_id,
            original_client_name=contract.client_name,
            original_client_email=contract.client_email,
            original_client_phone=contract.client_phone,
            original_client_address=contract.client_address,
            original_user_id=contract.user_id,
            new_client_name=new_client_name.strip(),
            new_client_email=new_client_email.strip().lower(),
            new_client_phone=new_client_phone or contract.client_phone,
            new_client_address=new_client_address or contract.client_address,
            new_user_id=new_user_id,
            relationship=relationship,
            transfer_reason=transfer_reason,
            transfer_notes=transfer_notes,
            transferred_by=transferred_by,
            transferred_at=now
        )

        contract.client_name = transfer.new_client_name
        contract.client_email = transfer.new_client_email
        contract.client_phone = transfer.new_client_phone
        contract.client_address = transfer.new_client_address
        if new_user_id:
            contract.user_id = new_user_id
        contract.updated_at = now

        with self.storage.atomic():
            self.save_contract(contract)
            self.storage.save(self.transfers_table, transfer.id, transfer.to_dict())

        if new_user_id:
            try:
                self.reservation_manager.reassign_client(
                    contract.reservation_id, new_user_id, contract.client_name,
                    contract.client_email, contract.client_phone, contract.client_address
                )
            except Exception as e:
                logger.warning(f"Reservation update after transfer of {contract.contract_number} failed: {e}")

        self.audit_trail.log_event(
            event_type=AuditEventType.CONTRACT_TRANSFERRED,
            entity_type="contract",
            entity_id=contract.id,
            metadata={
                "transfer_id": transfer.id,
                "from": original_client["client_email"],
                "to": transfer.new_client_email,
                "relationship": relationship,
            },
            user_id=transferred_by
        )
        log_action(
            logger, "info", f"Contract {contract.contract_number} transferred to {transfer.new_client_name}",
            user_id=transferred_by, action="transfer_contract", resource=contract.id
        )

        if original_client["user_id"]:
            self.notification_engine.notify_safely(
                self.notification_engine.notify_user,
                NotificationTemplates.contract_transferred(
                    contract.contract_number, transfer.new_client_name, contract_id=contract.id
                ),
                original_client["user_id"]
            )
        recipient = new_user_id or self._account_id_by_email(transfer.new_client_email)
        if recipient:
            self.notification_engine.notify_safely(
                self.notification_engine.notify_user,
                NotificationTemplates.contract_received(
                    contract.contract_number, contract.property_title, contract_id=contract.id
                ),
                recipient
            )

        return {"contract": contract, "transfer_history": transfer, "original_client": original_client}

    def revert_transfer(self, contract_id: str, transfer_id: str, reverted_by: Optional[str] = None) -> Contract:
        """
        Give a transferred contract back to its previous client.

        The transfer record is removed once the contract is restored.

        Raises:
            ValidationError: contract_id or transfer_id missing
            NotFoundError: transfer record or contract missing
        """
        if not contract_id or not transfer_id:
            raise ValidationError("contract_id and transfer_id are required", error="Missing required fields")
        data = self.storage.load(self.transfers_table, transfer_id)
        if not data or data.get("contract_id") != contract_id:
            raise NotFoundError("Transfer record not found", error="Transfer not found")
        transfer = ContractTransfer.from_dict(data)
        contract = self.require_contract(contract_id)

        contract.client_name = transfer.original_client_name
        contract.client_email = transfer.original_client_email
        contract.client_phone = transfer.original_client_phone
        contract.client_address = transfer.original_client_address
        contract.user_id = transfer.original_user_id or self._account_id_by_email(transfer.original_client_email)
        contract.updated_at = datetime.now(timezone.utc)

        with self.storage.atomic():
            self.save_contract(contract)
            self.storage.delete(self.transfers_table, transfer.id)

        if contract.user_id:
            try:
                self.reservation_manager.reassign_client(
                    contract.reservation_id, contract.user_id, contract.client_name,
                    contract.client_email, contract.client_phone, contract.client_address
                )
            except Exception as e:
                logger.warning(f"Reservation update after transfer revert of {contract.contract_number} failed: {e}")

        self.audit_trail.log_event(
            event_type=AuditEventType.CONTRACT_TRANSFER_REVERTED,
            entity_type="contract",
            entity_id=contract.id,
            metadata={"transfer_id": transfer.id, "restored_to": contract.client_email},
            user_id=reverted_by
        )
        log_action(
            logger, "info", f"Transfer of contract {contract.contract_number} reverted",
            user_id=reverted_by, action="revert_transfer", resource=contract.id
        )

        new_owner = transfer.new_user_id or self._account_id_by_email(transfer.new_client_email)
        if new_owner:
            self.notification_engine.notify_safely(
                self.notification_engine.notify_user,
                NotificationTemplates.transfer_reverted(contract.contract_number, contract_id=contract.id),
                new_owner
            )
        if contract.user_id:
            self.notification_engine.notify_safely(
                self.notification_engine.notify_user,
                NotificationTemplates.contract_restored(contract.contract_number, contract_id=contract.id),
                contract.user_id
            )
        return contract

    def list_transfers(self, contract_id: str) -> List[ContractTransfer]:
        """Transfer history of a contract, newest first"""
        self.require_contract(contract_id)
        transfers = [
            ContractTransfer.from_dict(data)
            for data in self.storage.find(self.transfers_table, {"contract_id": contract_id})
        ]
        transfers.sort(key=lambda t: t.transferred_at, reverse=True)
        return transfers

    def _account_id_by_email(self, email: str) -> Optional[str]:
        try:
            account = self.notification_engine.account_manager.find_by_email(email)
        except Exception as e:
            logger.warning(f"Account lookup for {email} failed: {e}")
            return None
        return account.id if account else None

    def refresh_overdue_status(self, as_of: Optional[date] = None) -> Dict[str, int]:
        """Recompute is_overdue / days_overdue on every pending installment of active contracts"""
        as_of = as_of or date.today()
        results = {"contracts_processed": 0, "schedules_updated": 0, "overdue_schedules": 0}

        active = self.storage.find(self.contracts_table, {"contract_status": ContractStatus.ACTIVE.value})
        for data in active:
            contract = Contract.from_dict(data)
            schedules = self.get_schedules(contract.id)
            changed = refresh_overdue(schedules, as_of)
            if changed:
                self.save_schedules(changed)
                self.audit_trail.log_event(
                    event_type=AuditEventType.OVERDUE_STATUS_REFRESHED,
                    entity_type="contract",
                    entity_id=contract.id,
                    metadata={"as_of": as_of, "schedules_updated": len(changed)}
                )

            results["contracts_processed"] += 1
            results["schedules_updated"] += len(changed)
            results["overdue_schedules"] += sum(1 for s in schedules if s.is_overdue)

        log_action(
            logger, "info", "Overdue status refreshed",
            action="refresh_overdue", resource="contract_payment_schedules",
            extra={**results, "as_of": as_of.isoformat()}
        )
        return results
