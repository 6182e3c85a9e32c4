"""
college_erp/services/fee_ledger.py
Fee ledger: derived due amount / payment status, fee creation and payments
"""
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional
import logging

from college_erp.core.exceptions import (
    ConflictError, FeeNotFoundError, StudentNotFoundError, ValidationError
)
from college_erp.db.supabase import SupabaseQueries
from college_erp.models.schemas import FeeStatus, PaymentMode

logger = logging.getLogger(__name__)

FEE_TABLE = "fee_details"
STUDENT_TABLE = "students"

MONEY_FIELDS = ("total_amount", "paid_amount", "fine", "discount")
PAYABLE_MODES = {
    PaymentMode.CASH.value,
    PaymentMode.CHEQUE.value,
    PaymentMode.ONLINE_TRANSFER.value,
    PaymentMode.CARD.value,
    PaymentMode.UPI.value,
}
UPDATABLE_FIELDS = MONEY_FIELDS + (
    "due_date", "payment_mode", "transaction_id", "remarks"
)
# Columns a ledger write may touch; identity columns such as roll_number
# belong to other writers and are never written back from a stale read.
LEDGER_COLUMNS = UPDATABLE_FIELDS + (
    "due_amount", "payment_status", "payment_date", "receipt_number", "updated_by"
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_datetime(value: Any) -> datetime:
    """Normalise a stored due date (date, datetime or ISO string) to aware UTC."""
    if isinstance(value, str):
        if len(value) == 10:
            value = date.fromisoformat(value)
        else:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    # A bare calendar date counts from midnight UTC
    return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)


def _settlement_amount(record: Dict[str, Any]) -> float:
    return record["total_amount"] + record["fine"] - record["discount"]


def is_settled(record: Dict[str, Any]) -> bool:
    return record["paid_amount"] >= _settlement_amount(record)


def compute_fee_derived_fields(record: Dict[str, Any], now: datetime) -> Dict[str, Any]:
    """
    Return a copy of ``record`` with ``due_amount`` and ``payment_status``
    recomputed from its money fields, due date and ``now``.

    The rules apply in order and later rules win:
      1. due = total - paid + fine - discount (not clamped at zero)
      2. nothing paid -> Pending, fully covered -> Paid, otherwise Partial
      3. anything still due after the due date -> Overdue
    """
    derived = dict(record)
    for field in MONEY_FIELDS:
        derived[field] = derived.get(field) or 0

    total = derived["total_amount"]
    paid = derived["paid_amount"]
    fine = derived["fine"]
    discount = derived["discount"]

    due_amount = total - paid + fine - discount

    if paid == 0:
        status = FeeStatus.PENDING
    elif paid >= total + fine - discount:
        status = FeeStatus.PAID
    else:
        status = FeeStatus.PARTIAL

    if due_amount > 0 and now > _as_datetime(derived["due_date"]):
        status = FeeStatus.OVERDUE

    derived["due_amount"] = due_amount
    derived["payment_status"] = status.value
    return derived


def make_receipt_number(roll_number: str, now: datetime) -> str:
    # TODO: two settlements in the same millisecond for one roll number collide;
    # needs a database sequence or a unique index on receipt_number.
    return f"REC-{int(now.timestamp() * 1000)}-{roll_number}"


def _check_money(values: Dict[str, Any]) -> None:
    for field in MONEY_FIELDS:
        value = values.get(field)
        if value is not None and value < 0:
            raise ValidationError(
                f"{field} cannot be negative",
                details={"field": field, "value": value}
            )


class FeeLedgerService:
    """
    Fee record operations. Every write path runs
    :func:`compute_fee_derived_fields` before persisting and guards the
    write with a compare-and-set on the row's ``version``.
    """

    def __init__(
        self,
        db: SupabaseQueries,
        clock: Callable[[], datetime] = utcnow
    ):
        self.db = db
        self.clock = clock

    # ============================================
    # READS
    # ============================================

    async def _load(self, fee_id: str) -> Dict[str, Any]:
        fee = await self.db.select_by_id(FEE_TABLE, "fee_id", fee_id)
        if not fee:
            raise FeeNotFoundError(fee_id)
        return fee

    async def get_fee(self, fee_id: str) -> Dict[str, Any]:
        fee = await self._load(fee_id)
        return compute_fee_derived_fields(fee, self.clock())

    async def get_student_fees(self, roll_number: str) -> List[Dict[str, Any]]:
        fees = await self.db.select_all(FEE_TABLE, {"roll_number": roll_number})
        fees.sort(key=lambda f: (f["academic_year"], f["semester"]), reverse=True)
        now = self.clock()
        return [compute_fee_derived_fields(fee, now) for fee in fees]

    async def statistics(self) -> Dict[str, Any]:
        now = self.clock()
        fees = [
            compute_fee_derived_fields(fee, now)
            for fee in await self.db.select_all(FEE_TABLE)
        ]

        status_wise: Dict[str, Dict[str, Any]] = {}
        for fee in fees:
            bucket = status_wise.setdefault(
                fee["payment_status"],
                {"status": fee["payment_status"], "count": 0, "amount": 0}
            )
            bucket["count"] += 1
            bucket["amount"] += fee["total_amount"]

        def count_of(status: FeeStatus) -> int:
            return status_wise.get(status.value, {}).get("count", 0)

        return {
            "total_fees": len(fees),
            "paid_count": count_of(FeeStatus.PAID),
            "pending_count": count_of(FeeStatus.PENDING),
            "partial_count": count_of(FeeStatus.PARTIAL),
            "overdue_count": count_of(FeeStatus.OVERDUE),
            "amounts": {
                "total_amount": sum(f["total_amount"] for f in fees),
                "total_paid": sum(f["paid_amount"] for f in fees),
                "total_due": sum(f["due_amount"] for f in fees),
            },
            "status_wise": list(status_wise.values()),
        }

    # ============================================
    # WRITES
    # ============================================

    async def create_fee(self, fields: Dict[str, Any], actor_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Create a fee record for the student owning ``fields["roll_number"]``.

        Raises:
            ValidationError: negative money field, or a paid amount without
                a payment mode
            StudentNotFoundError: no student with that roll number
            ConflictError: the (roll number, academic year, semester, fee type)
                tuple already has a record
        """
        _check_money(fields)

        roll_number = fields["roll_number"]
        student = await self.db.select_one(STUDENT_TABLE, {"roll_number": roll_number})
        if not student:
            raise StudentNotFoundError(roll_number)

        identity = {
            "roll_number": roll_number,
            "academic_year": fields["academic_year"],
            "semester": fields["semester"],
            "fee_type": fields["fee_type"],
        }
        if await self.db.exists(FEE_TABLE, identity):
            raise ConflictError(
                "Fee detail already exists for this student, academic year, "
                "semester, and fee type"
            )

        paid_amount = fields.get("paid_amount") or 0
        mode = getattr(fields.get("payment_mode"), "value", fields.get("payment_mode"))
        if paid_amount > 0 and mode not in PAYABLE_MODES:
            raise ValidationError(
                "A payment mode is required when the fee is created with a paid amount",
                details={"payment_mode": mode}
            )

        now = self.clock()
        record = {
            **fields,
            "student_id": student["student_id"],
            "paid_amount": paid_amount,
            "fine": fields.get("fine") or 0,
            "discount": fields.get("discount") or 0,
            "payment_mode": mode if paid_amount > 0 else PaymentMode.NOT_PAID.value,
            "created_by": actor_id,
            "version": 1,
        }
        record = compute_fee_derived_fields(record, now)
        if paid_amount > 0:
            # The opening amount is a payment like any other
            record["payment_date"] = now.isoformat()
            if is_settled(record):
                record["receipt_number"] = make_receipt_number(roll_number, now)

        try:
            fee = await self.db.insert_one(FEE_TABLE, record)
        except ConflictError:
            # Lost the race against a concurrent create of the same tuple
            raise ConflictError(
                "Fee detail already exists for this student, academic year, "
                "semester, and fee type"
            )

        logger.info(f"Fee created for {roll_number}: {fields['fee_type']} {fields['academic_year']}/{fields['semester']}")
        return fee

    async def update_fee(
        self,
        fee_id: str,
        changes: Dict[str, Any],
        actor_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Generic edit of a fee record; derived fields are always recomputed."""
        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("No fields to update")
        _check_money(changes)

        fee = await self._load(fee_id)
        now = self.clock()

        updated = {**fee, **changes, "updated_by": actor_id}
        if changes.get("paid_amount") is not None and changes["paid_amount"] > (fee.get("paid_amount") or 0):
            updated["payment_date"] = now.isoformat()
        updated = compute_fee_derived_fields(updated, now)

        fee = await self._compare_and_set(fee, updated)
        logger.info(f"Fee updated: {fee_id}")
        return fee

    async def record_payment(
        self,
        fee_id: str,
        amount: float,
        mode: str,
        transaction_id: Optional[str] = None,
        remarks: Optional[str] = None,
        actor_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        Add ``amount`` to the fee's paid amount.

        The increment is applied to the version that was read; if another
        writer changed the record in between, ``ConflictError`` is raised and
        nothing is written.
        """
        if amount is None or amount <= 0:
            raise ValidationError("Paid amount must be positive", details={"amount": amount})
        mode = getattr(mode, "value", mode)
        if mode not in PAYABLE_MODES:
            raise ValidationError("Invalid payment mode", details={"payment_mode": mode})

        fee = await self._load(fee_id)
        now = self.clock()

        updated = dict(fee)
        updated["paid_amount"] = (fee.get("paid_amount") or 0) + amount
        updated["payment_mode"] = mode
        updated["payment_date"] = now.isoformat()
        updated["updated_by"] = actor_id
        if transaction_id:
            updated["transaction_id"] = transaction_id
        if remarks:
            updated["remarks"] = remarks

        updated = compute_fee_derived_fields(updated, now)
        if is_settled(updated):
            updated["receipt_number"] = make_receipt_number(updated["roll_number"], now)

        fee = await self._compare_and_set(fee, updated)
        logger.info(
            f"Payment of {amount} ({mode}) recorded for fee {fee_id}; "
            f"status {fee['payment_status']}"
        )
        return fee

    async def delete_fee(self, fee_id: str) -> None:
        await self._load(fee_id)
        await self.db.delete_by_id(FEE_TABLE, "fee_id", fee_id)
        logger.info(f"Fee deleted: {fee_id}")

    async def _compare_and_set(self, current: Dict[str, Any], updated: Dict[str, Any]) -> Dict[str, Any]:
        version = current.get("version") or 1
        data = {
            key: updated[key] for key in LEDGER_COLUMNS
            if key in updated and updated[key] != current.get(key)
        }
        data["version"] = version + 1
        data["updated_at"] = self.clock().isoformat()

        row = await self.db.update_where(
            FEE_TABLE,
            {"fee_id": current["fee_id"], "version": version},
            data
        )
        if row is None:
            logger.warning(f"Concurrent modification of fee {current['fee_id']} at version {version}")
            raise ConflictError("Fee record was modified by another request; reload and retry")
        return row
