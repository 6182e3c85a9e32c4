"""
college_erp/models/schemas.py
Pydantic schemas for the College ERP application
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Generic, List, Optional, TypeVar
from datetime import date, datetime

from pydantic import BaseModel, EmailStr, Field, field_validator


T = TypeVar("T")

PHONE_PATTERN = r"^[0-9]{10}$"


# ============================================
# ENUMS
# ============================================

class AdminRole(str, Enum):
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class Gender(str, Enum):
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


class BloodGroup(str, Enum):
    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"


class Department(str, Enum):
    COMPUTER_SCIENCE = "Computer Science"
    ELECTRONICS = "Electronics"
    MECHANICAL = "Mechanical"
    CIVIL = "Civil"
    ELECTRICAL = "Electrical"
    IT = "IT"
    MBA = "MBA"
    BBA = "BBA"


class StaffDepartment(str, Enum):
    COMPUTER_SCIENCE = "Computer Science"
    ELECTRONICS = "Electronics"
    MECHANICAL = "Mechanical"
    CIVIL = "Civil"
    ELECTRICAL = "Electrical"
    IT = "IT"
    MBA = "MBA"
    BBA = "BBA"
    ADMINISTRATION = "Administration"
    LIBRARY = "Library"
    SPORTS = "Sports"
    ACCOUNTS = "Accounts"


class Designation(str, Enum):
    PROFESSOR = "Professor"
    ASSOCIATE_PROFESSOR = "Associate Professor"
    ASSISTANT_PROFESSOR = "Assistant Professor"
    LECTURER = "Lecturer"
    LAB_ASSISTANT = "Lab Assistant"
    HOD = "HOD"
    PRINCIPAL = "Principal"
    VICE_PRINCIPAL = "Vice Principal"
    LIBRARIAN = "Librarian"
    CLERK = "Clerk"
    ACCOUNTANT = "Accountant"
    PEON = "Peon"


class StudentStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    GRADUATED = "Graduated"
    SUSPENDED = "Suspended"


class StaffStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ON_LEAVE = "On Leave"
    RESIGNED = "Resigned"


class FeeType(str, Enum):
    TUITION = "Tuition Fee"
    LIBRARY = "Library Fee"
    LAB = "Lab Fee"
    SPORTS = "Sports Fee"
    EXAM = "Exam Fee"
    DEVELOPMENT = "Development Fee"
    TRANSPORT = "Transport Fee"
    HOSTEL = "Hostel Fee"
    OTHER = "Other"


class FeeStatus(str, Enum):
    PENDING = "Pending"
    PARTIAL = "Partial"
    PAID = "Paid"
    OVERDUE = "Overdue"


class PaymentMode(str, Enum):
    CASH = "Cash"
    CHEQUE = "Cheque"
    ONLINE_TRANSFER = "Online Transfer"
    CARD = "Card"
    UPI = "UPI"
    NOT_PAID = "Not Paid"


# ============================================
# RESPONSE ENVELOPE
# ============================================

class ApiResponse(BaseModel, Generic[T]):
    success: bool = True
    message: Optional[str] = None
    data: Optional[T] = None


# ============================================
# ADMIN & AUTH MODELS
# ============================================

class AdminCreate(BaseModel):
    username: str = Field(..., min_length=3)
    email: EmailStr
    password: str = Field(..., min_length=6)
    role: Optional[AdminRole] = None

    @field_validator("username")
    @classmethod
    def strip_username(cls, v: str) -> str:
        v = v.strip()
        if len(v) < 3:
            raise ValueError("Username must be at least 3 characters")
        return v

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class AdminLogin(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=6)


class RefreshRequest(BaseModel):
    refresh_token: str


class AdminResponse(BaseModel):
    admin_id: str
    username: str
    email: EmailStr
    role: AdminRole
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class TokenPayload(BaseModel):
    sub: str
    role: AdminRole
    exp: datetime


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class LoginResponse(Token):
    admin: AdminResponse


# ============================================
# SHARED NESTED MODELS
# ============================================

class Address(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    pincode: Optional[str] = None
    country: str = "India"


class EmergencyContact(BaseModel):
    name: Optional[str] = None
    phone: Optional[str] = None
    relation: Optional[str] = None


# ============================================
# STUDENT MODELS
# ============================================

class StudentBase(BaseModel):
    roll_number: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., pattern=PHONE_PATTERN)
    date_of_birth: date
    gender: Gender
    address: Optional[Address] = None
    department: Department
    semester: int = Field(..., ge=1, le=8)
    batch: str = Field(..., min_length=1)
    admission_date: Optional[date] = None
    status: StudentStatus = StudentStatus.ACTIVE
    parent_name: str = Field(..., min_length=1)
    parent_phone: str = Field(..., pattern=PHONE_PATTERN)
    blood_group: Optional[BloodGroup] = None
    photo_url: Optional[str] = None


class StudentCreate(StudentBase):
    @field_validator("roll_number", "first_name", "last_name", "parent_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class StudentUpdate(BaseModel):
    roll_number: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[Address] = None
    department: Optional[Department] = None
    semester: Optional[int] = Field(None, ge=1, le=8)
    batch: Optional[str] = None
    status: Optional[StudentStatus] = None
    parent_name: Optional[str] = None
    parent_phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    blood_group: Optional[BloodGroup] = None
    photo_url: Optional[str] = None


class StudentResponse(StudentBase):
    student_id: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class StudentSummary(BaseModel):
    student_id: str
    roll_number: str
    first_name: str
    last_name: str
    email: EmailStr
    department: Department


# ============================================
# STAFF MODELS
# ============================================

class StaffBase(BaseModel):
    employee_id: str = Field(..., min_length=1)
    first_name: str = Field(..., min_length=1)
    last_name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = Field(..., pattern=PHONE_PATTERN)
    date_of_birth: date
    gender: Gender
    address: Optional[Address] = None
    department: StaffDepartment
    designation: Designation
    qualification: str = Field(..., min_length=1)
    experience: int = Field(..., ge=0)
    joining_date: Optional[date] = None
    salary: float = Field(..., ge=0)
    status: StaffStatus = StaffStatus.ACTIVE
    subjects: List[str] = Field(default_factory=list)
    blood_group: Optional[BloodGroup] = None
    emergency_contact: Optional[EmergencyContact] = None
    photo_url: Optional[str] = None


class StaffCreate(StaffBase):
    @field_validator("employee_id", "first_name", "last_name")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class StaffUpdate(BaseModel):
    employee_id: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, pattern=PHONE_PATTERN)
    date_of_birth: Optional[date] = None
    gender: Optional[Gender] = None
    address: Optional[Address] = None
    department: Optional[StaffDepartment] = None
    designation: Optional[Designation] = None
    qualification: Optional[str] = None
    experience: Optional[int] = Field(None, ge=0)
    joining_date: Optional[date] = None
    salary: Optional[float] = Field(None, ge=0)
    status: Optional[StaffStatus] = None
    subjects: Optional[List[str]] = None
    blood_group: Optional[BloodGroup] = None
    emergency_contact: Optional[EmergencyContact] = None
    photo_url: Optional[str] = None


class StaffResponse(StaffBase):
    staff_id: str
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ============================================
# FEE MODELS
# ============================================

class FeeCreate(BaseModel):
    roll_number: str = Field(..., min_length=1)
    academic_year: str = Field(..., min_length=1)
    semester: int = Field(..., ge=1, le=8)
    fee_type: FeeType
    total_amount: float = Field(..., ge=0)
    paid_amount: float = Field(0, ge=0)
    fine: float = Field(0, ge=0)
    discount: float = Field(0, ge=0)
    due_date: date
    # Required when paid_amount > 0
    payment_mode: Optional[PaymentMode] = None
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("roll_number", "academic_year")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return v.strip()


class FeeUpdate(BaseModel):
    """Generic fee edit. Derived fields and the identifying tuple are not editable."""
    total_amount: Optional[float] = Field(None, ge=0)
    paid_amount: Optional[float] = Field(None, ge=0)
    fine: Optional[float] = Field(None, ge=0)
    discount: Optional[float] = Field(None, ge=0)
    due_date: Optional[date] = None
    payment_mode: Optional[PaymentMode] = None
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None


class FeePayment(BaseModel):
    paid_amount: float = Field(..., gt=0)
    payment_mode: PaymentMode
    transaction_id: Optional[str] = None
    remarks: Optional[str] = None

    @field_validator("payment_mode")
    @classmethod
    def reject_not_paid(cls, v: PaymentMode) -> PaymentMode:
        if v == PaymentMode.NOT_PAID:
            raise ValueError("Invalid payment mode")
        return v


class FeeResponse(BaseModel):
    fee_id: str
    student_id: str
    roll_number: str
    academic_year: str
    semester: int
    fee_type: FeeType
    total_amount: float
    paid_amount: float = 0
    fine: float = 0
    discount: float = 0
    due_amount: float = 0
    payment_status: FeeStatus = FeeStatus.PENDING
    due_date: date
    payment_date: Optional[datetime] = None
    payment_mode: PaymentMode = PaymentMode.NOT_PAID
    transaction_id: Optional[str] = None
    receipt_number: Optional[str] = None
    remarks: Optional[str] = None
    student: Optional[StudentSummary] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


# ============================================
# DASHBOARD
# ============================================

class FeeAmounts(BaseModel):
    total_amount: float = 0
    total_paid: float = 0
    total_due: float = 0


class StatusBreakdown(BaseModel):
    status: str
    count: int = 0
    amount: float = 0


class FeeStatistics(BaseModel):
    total_fees: int = 0
    paid_count: int = 0
    pending_count: int = 0
    partial_count: int = 0
    overdue_count: int = 0
    amounts: FeeAmounts = Field(default_factory=FeeAmounts)
    status_wise: List[StatusBreakdown] = Field(default_factory=list)


class GroupCount(BaseModel):
    name: str
    count: int = 0


class StudentStatistics(BaseModel):
    total_students: int = 0
    active_students: int = 0
    department_wise: List[GroupCount] = Field(default_factory=list)


class StaffStatistics(BaseModel):
    total_staff: int = 0
    active_staff: int = 0
    department_wise: List[GroupCount] = Field(default_factory=list)
    designation_wise: List[GroupCount] = Field(default_factory=list)


# ============================================
# EXPORTS
# ============================================

__all__ = [
    # Enums
    "AdminRole",
    "Gender",
    "BloodGroup",
    "Department",
    "StaffDepartment",
    "Designation",
    "StudentStatus",
    "StaffStatus",
    "FeeType",
    "FeeStatus",
    "PaymentMode",
    # Envelope
    "ApiResponse",
    # Admin & Auth
    "AdminCreate",
    "AdminLogin",
    "ChangePasswordRequest",
    "RefreshRequest",
    "AdminResponse",
    "TokenPayload",
    "Token",
    "LoginResponse",
    # Nested
    "Address",
    "EmergencyContact",
    # Student
    "StudentBase",
    "StudentCreate",
    "StudentUpdate",
    "StudentResponse",
    "StudentSummary",
    # Staff
    "StaffBase",
    "StaffCreate",
    "StaffUpdate",
    "StaffResponse",
    # Fee
    "FeeCreate",
    "FeeUpdate",
    "FeePayment",
    "FeeResponse",
    # Dashboard
    "FeeAmounts",
    "StatusBreakdown",
    "FeeStatistics",
    "GroupCount",
    "StudentStatistics",
    "StaffStatistics",
]
