"""
college_erp/api/v1/endpoints/staff.py
Staff record endpoints
"""
from collections import Counter
from fastapi import APIRouter, HTTPException, status, Depends
from college_erp.models.schemas import (
    ApiResponse, StaffCreate, StaffUpdate, StaffResponse, StaffStatistics,
    StaffStatus, TokenPayload
)
from college_erp.core.dependencies import get_db
from college_erp.core.exceptions import ERPError, ConflictError, StaffNotFoundError
from college_erp.core.security import require_admin
from college_erp.db.supabase import SupabaseQueries
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


async def _ensure_unique(db: SupabaseQueries, data: dict, staff_id: str = None) -> None:
    exclude = {"staff_id": staff_id} if staff_id else None
    for column in ("employee_id", "email"):
        if data.get(column) and await db.exists("staff", {column: data[column]}, exclude=exclude):
            raise ConflictError("Staff with this employee ID or email already exists")


@router.post("/", response_model=ApiResponse[StaffResponse], status_code=status.HTTP_201_CREATED)
async def create_staff(
    staff_data: StaffCreate,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Add a staff member (Admin only)
    """
    try:
        staff_dict = staff_data.model_dump(mode="json")
        await _ensure_unique(db, staff_dict)

        staff_dict["created_by"] = current_user.sub
        new_staff = await db.insert_one("staff", staff_dict)

        logger.info(f"Staff created: {new_staff['staff_id']}")
        return ApiResponse(
            message="Staff member created successfully",
            data=StaffResponse(**new_staff)
        )

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Create staff error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create staff member"
        )


@router.get("/stats/dashboard", response_model=ApiResponse[StaffStatistics])
async def get_staff_statistics(
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    try:
        staff = await db.select_all("staff")
        departments = Counter(s.get("department") for s in staff)
        designations = Counter(s.get("designation") for s in staff)

        return ApiResponse(data=StaffStatistics(
            total_staff=len(staff),
            active_staff=sum(1 for s in staff if s.get("status") == StaffStatus.ACTIVE.value),
            department_wise=[
                {"name": name, "count": count} for name, count in departments.most_common()
            ],
            designation_wise=[
                {"name": name, "count": count} for name, count in designations.most_common()
            ]
        ))

    except Exception as e:
        logger.error(f"Get staff statistics error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve statistics"
        )


@router.get("/{staff_id}", response_model=ApiResponse[StaffResponse])
async def get_staff(
    staff_id: str,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    try:
        staff = await db.select_by_id("staff", "staff_id", staff_id)
        if not staff:
            raise StaffNotFoundError(staff_id)

        return ApiResponse(data=StaffResponse(**staff))

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Get staff error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve staff member"
        )


@router.put("/{staff_id}", response_model=ApiResponse[StaffResponse])
async def update_staff(
    staff_id: str,
    staff_data: StaffUpdate,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Update staff information (Admin only)
    """
    try:
        existing = await db.select_by_id("staff", "staff_id", staff_id)
        if not existing:
            raise StaffNotFoundError(staff_id)

        update_data = staff_data.model_dump(mode="json", exclude_unset=True)
        if not update_data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields to update"
            )
        if update_data.get("email"):
            update_data["email"] = update_data["email"].lower()

        await _ensure_unique(db, update_data, staff_id)

        updated_staff = await db.update_by_id("staff", "staff_id", staff_id, update_data)

        logger.info(f"Staff updated: {staff_id}")
        return ApiResponse(
            message="Staff member updated successfully",
            data=StaffResponse(**updated_staff)
        )

    except (ERPError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Update staff error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update staff member"
        )


@router.delete("/{staff_id}", response_model=ApiResponse)
async def delete_staff(
    staff_id: str,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Remove a staff member (Admin only)
    """
    try:
        existing = await db.select_by_id("staff", "staff_id", staff_id)
        if not existing:
            raise StaffNotFoundError(staff_id)

        await db.delete_by_id("staff", "staff_id", staff_id)

        logger.info(f"Staff deleted: {staff_id}")
        return ApiResponse(message="Staff member deleted successfully")

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Delete staff error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete staff member"
        )
