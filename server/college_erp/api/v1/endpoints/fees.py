"""
college_erp/api/v1/endpoints/fees.py
Fee management endpoints
"""
from fastapi import APIRouter, HTTPException, status, Depends
from typing import List, Optional
from college_erp.models.schemas import (
    ApiResponse, FeeCreate, FeeUpdate, FeePayment, FeeResponse, FeeStatistics,
    StudentSummary, TokenPayload
)
from college_erp.core.dependencies import get_db, get_fee_ledger
from college_erp.core.exceptions import ERPError
from college_erp.core.security import require_admin
from college_erp.db.supabase import SupabaseQueries
from college_erp.services.fee_ledger import FeeLedgerService
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


async def _enrich_fee_response(
    fee: dict,
    db: SupabaseQueries,
    student_summary: Optional[StudentSummary] = None
) -> FeeResponse:
    """Helper to attach the owning student's summary, unless one is given."""
    if student_summary is None and fee.get("student_id"):
        student = await db.select_by_id("students", "student_id", fee["student_id"])
        if student:
            student_summary = StudentSummary(**student)

    return FeeResponse(**{**fee, "student": student_summary})


@router.post("/", response_model=ApiResponse[FeeResponse], status_code=status.HTTP_201_CREATED)
async def create_fee(
    fee_data: FeeCreate,
    current_user: TokenPayload = Depends(require_admin),
    ledger: FeeLedgerService = Depends(get_fee_ledger),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Create a fee record for a student, identified by roll number (Admin only)
    """
    try:
        new_fee = await ledger.create_fee(fee_data.model_dump(mode="json"), current_user.sub)
        return ApiResponse(
            message="Fee detail created successfully",
            data=await _enrich_fee_response(new_fee, db)
        )

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Create fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create fee record"
        )


@router.get("/stats/dashboard", response_model=ApiResponse[FeeStatistics])
async def get_fee_statistics(
    current_user: TokenPayload = Depends(require_admin),
    ledger: FeeLedgerService = Depends(get_fee_ledger)
):
    """
    Fee collection statistics (Admin only)
    """
    try:
        return ApiResponse(data=FeeStatistics(**await ledger.statistics()))

    except Exception as e:
        logger.error(f"Get fee statistics error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve fee statistics"
        )


@router.get("/student/{roll_number}", response_model=ApiResponse[List[FeeResponse]])
async def get_student_fees(
    roll_number: str,
    current_user: TokenPayload = Depends(require_admin),
    ledger: FeeLedgerService = Depends(get_fee_ledger),
    db: SupabaseQueries = Depends(get_db)
):
    """
    All fee records of one student, newest academic year and semester first
    """
    try:
        fees = await ledger.get_student_fees(roll_number)
        if not fees:
            return ApiResponse(data=[])

        # Every record belongs to the same student
        student = await db.select_one("students", {"roll_number": roll_number})
        summary = StudentSummary(**student) if student else None
        return ApiResponse(data=[await _enrich_fee_response(fee, db, summary) for fee in fees])

    except Exception as e:
        logger.error(f"Get student fees error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve student fee details"
        )


@router.get("/{fee_id}", response_model=ApiResponse[FeeResponse])
async def get_fee(
    fee_id: str,
    current_user: TokenPayload = Depends(require_admin),
    ledger: FeeLedgerService = Depends(get_fee_ledger),
    db: SupabaseQueries = Depends(get_db)
):
    try:
        fee = await ledger.get_fee(fee_id)
        return ApiResponse(data=await _enrich_fee_response(fee, db))

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Get fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve fee record"
        )


@router.put("/{fee_id}", response_model=ApiResponse[FeeResponse])
async def update_fee(
    fee_id: str,
    fee_data: FeeUpdate,
    current_user: TokenPayload = Depends(require_admin),
    ledger: FeeLedgerService = Depends(get_fee_ledger),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Update a fee record's amounts, due date or payment details (Admin only).
    Due amount and payment status are recomputed, never taken from the request.
    """
    try:
        updated_fee = await ledger.update_fee(
            fee_id,
            fee_data.model_dump(mode="json", exclude_unset=True),
            current_user.sub
        )
        return ApiResponse(
            message="Fee detail updated successfully",
            data=await _enrich_fee_response(updated_fee, db)
        )

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Update fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update fee"
        )


@router.post("/{fee_id}/payment", response_model=ApiResponse[FeeResponse])
async def record_payment(
    fee_id: str,
    payment_data: FeePayment,
    current_user: TokenPayload = Depends(require_admin),
    ledger: FeeLedgerService = Depends(get_fee_ledger),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Record a payment against an existing fee
    """
    try:
        updated_fee = await ledger.record_payment(
            fee_id,
            payment_data.paid_amount,
            payment_data.payment_mode.value,
            transaction_id=payment_data.transaction_id,
            remarks=payment_data.remarks,
            actor_id=current_user.sub
        )
        return ApiResponse(
            message="Payment recorded successfully",
            data=await _enrich_fee_response(updated_fee, db)
        )

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Record payment error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to record payment"
        )


@router.delete("/{fee_id}", response_model=ApiResponse)
async def delete_fee(
    fee_id: str,
    current_user: TokenPayload = Depends(require_admin),
    ledger: FeeLedgerService = Depends(get_fee_ledger)
):
    """
    Delete a fee record (Admin only)
    """
    try:
        await ledger.delete_fee(fee_id)
        return ApiResponse(message="Fee detail deleted successfully")

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Delete fee error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete fee"
        )
