"""
college_erp/api/v1/endpoints/students.py
Student record endpoints
"""
from collections import Counter
from fastapi import APIRouter, HTTPException, status, Depends
from college_erp.models.schemas import (
    ApiResponse, StudentCreate, StudentUpdate, StudentResponse, StudentStatistics,
    StudentStatus, TokenPayload
)
from college_erp.core.dependencies import get_db
from college_erp.core.exceptions import ERPError, ConflictError, StudentNotFoundError
from college_erp.core.security import require_admin
from college_erp.db.supabase import SupabaseQueries
import logging

logger = logging.getLogger(__name__)
router = APIRouter()


async def _ensure_unique(db: SupabaseQueries, data: dict, student_id: str = None) -> None:
    exclude = {"student_id": student_id} if student_id else None
    for column in ("roll_number", "email"):
        if data.get(column) and await db.exists("students", {column: data[column]}, exclude=exclude):
            raise ConflictError("Student with this roll number or email already exists")


@router.post("/", response_model=ApiResponse[StudentResponse], status_code=status.HTTP_201_CREATED)
async def create_student(
    student_data: StudentCreate,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Create a new student record (Admin only)
    """
    try:
        student_dict = student_data.model_dump(mode="json")
        await _ensure_unique(db, student_dict)

        student_dict["created_by"] = current_user.sub
        new_student = await db.insert_one("students", student_dict)

        logger.info(f"Student created: {new_student['student_id']}")
        return ApiResponse(
            message="Student created successfully",
            data=StudentResponse(**new_student)
        )

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Create student error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create student"
        )


@router.get("/stats/dashboard", response_model=ApiResponse[StudentStatistics])
async def get_student_statistics(
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Student counts for the dashboard
    """
    try:
        students = await db.select_all("students")
        departments = Counter(s.get("department") for s in students)

        return ApiResponse(data=StudentStatistics(
            total_students=len(students),
            active_students=sum(1 for s in students if s.get("status") == StudentStatus.ACTIVE.value),
            department_wise=[
                {"name": name, "count": count} for name, count in departments.most_common()
            ]
        ))

    except Exception as e:
        logger.error(f"Get student statistics error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve statistics"
        )


@router.get("/{student_id}", response_model=ApiResponse[StudentResponse])
async def get_student(
    student_id: str,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Get student by ID
    """
    try:
        student = await db.select_by_id("students", "student_id", student_id)
        if not student:
            raise StudentNotFoundError(student_id)

        return ApiResponse(data=StudentResponse(**student))

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Get student error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to retrieve student"
        )


@router.put("/{student_id}", response_model=ApiResponse[StudentResponse])
async def update_student(
    student_id: str,
    student_data: StudentUpdate,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Update student information (Admin only)
    """
    try:
        existing = await db.select_by_id("students", "student_id", student_id)
        if not existing:
            raise StudentNotFoundError(student_id)

        # Update only provided fields
        update_data = student_data.model_dump(mode="json", exclude_unset=True)
        if not update_data:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No fields to update"
            )
        if update_data.get("email"):
            update_data["email"] = update_data["email"].lower()

        await _ensure_unique(db, update_data, student_id)

        updated_student = await db.update_by_id("students", "student_id", student_id, update_data)

        if update_data.get("roll_number") and update_data["roll_number"] != existing["roll_number"]:
            await db.update_many(
                "fee_details",
                {"student_id": student_id},
                {"roll_number": update_data["roll_number"]}
            )

        logger.info(f"Student updated: {student_id}")
        return ApiResponse(
            message="Student updated successfully",
            data=StudentResponse(**updated_student)
        )

    except (ERPError, HTTPException):
        raise
    except Exception as e:
        logger.error(f"Update student error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update student"
        )


@router.delete("/{student_id}", response_model=ApiResponse)
async def delete_student(
    student_id: str,
    current_user: TokenPayload = Depends(require_admin),
    db: SupabaseQueries = Depends(get_db)
):
    """
    Delete student (Admin only)
    """
    try:
        existing = await db.select_by_id("students", "student_id", student_id)
        if not existing:
            raise StudentNotFoundError(student_id)

        # Fee records must be deleted before their student
        if await db.exists("fee_details", {"student_id": student_id}):
            raise ConflictError("Student has fee records and cannot be deleted")

        await db.delete_by_id("students", "student_id", student_id)

        logger.info(f"Student deleted: {student_id}")
        return ApiResponse(message="Student deleted successfully")

    except ERPError:
        raise
    except Exception as e:
        logger.error(f"Delete student error: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete student"
        )
