"""
college_erp/core/exceptions.py
Domain exceptions raised by services and rendered by the API layer

Usage:
    from college_erp.core.exceptions import FeeNotFoundError, ConflictError

    if not fee:
        raise FeeNotFoundError(fee_id)
"""
from typing import Optional, Any, Dict


class ERPError(Exception):
    """Base exception for all College ERP errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body = {
            "success": False,
            "code": self.code,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


# ============================================
# Input & lookup errors
# ============================================

class ValidationError(ERPError):
    """Input failed a domain rule"""

    status_code = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class NotFoundError(ERPError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: Any):
        super().__init__(
            f"{resource_type} not found: {resource_id}",
            code=f"{resource_type.upper().replace(' ', '_')}_NOT_FOUND",
            details={"resource_id": str(resource_id)}
        )


class StudentNotFoundError(NotFoundError):
    def __init__(self, student_ref: Any):
        super().__init__("Student", student_ref)


class StaffNotFoundError(NotFoundError):
    def __init__(self, staff_id: Any):
        super().__init__("Staff", staff_id)


class FeeNotFoundError(NotFoundError):
    def __init__(self, fee_id: Any):
        super().__init__("Fee detail", fee_id)


class AdminNotFoundError(NotFoundError):
    def __init__(self, admin_id: Any):
        super().__init__("Admin", admin_id)


class ConflictError(ERPError):
    """Uniqueness violation or lost concurrent update"""

    status_code = 409

    def __init__(self, message: str = "Record already exists"):
        super().__init__(message, code="CONFLICT")


class DatabaseError(ERPError):
    """Storage call failed for a reason other than a constraint"""

    status_code = 500

    def __init__(self, action: str, table: str):
        super().__init__(f"Failed to {action} {table}", code="DATABASE_ERROR")


# ============================================
# Authentication & Authorization Errors
# ============================================

class InvalidCredentialsError(ERPError):
    status_code = 401

    def __init__(self, message: str = "Invalid credentials"):
        super().__init__(message, code="INVALID_CREDENTIALS")


class AccountLockedError(ERPError):
    status_code = 423

    def __init__(self):
        super().__init__(
            "Account is temporarily locked due to too many failed login attempts. "
            "Please try again later.",
            code="ACCOUNT_LOCKED"
        )


class AccountDeactivatedError(ERPError):
    status_code = 403

    def __init__(self):
        super().__init__(
            "Your account has been deactivated. Contact administrator.",
            code="ACCOUNT_DEACTIVATED"
        )


class ForbiddenError(ERPError):
    status_code = 403

    def __init__(self, message: str = "Not authorized"):
        super().__init__(message, code="FORBIDDEN")
