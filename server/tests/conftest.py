"""
College ERP - Test Configuration and Fixtures
"""
import os
from datetime import date, datetime, timedelta, timezone
from typing import AsyncGenerator

import pytest
from httpx import AsyncClient, ASGITransport
from faker import Faker

# Set testing environment before the settings module is imported
os.environ.setdefault('SECRET_KEY', 'test-secret-key-for-testing-only')
os.environ.setdefault('SUPABASE_URL', 'http://localhost:54321')
os.environ.setdefault('SUPABASE_KEY', 'test-anon-key')
os.environ.setdefault('SUPABASE_SERVICE_KEY', 'test-service-key')

from college_erp.main import app
from college_erp.core.dependencies import get_db
from college_erp.core.security import create_access_token, hash_password
from college_erp.db.supabase import SupabaseQueries
from mocks.fake_supabase import FakeSupabaseClient

fake = Faker('en_IN')

ADMIN_PASSWORD = 'Admin@123'


class FakeClock:
    """Controllable replacement for the services' wall clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def supabase_client() -> FakeSupabaseClient:
    return FakeSupabaseClient()


@pytest.fixture
def db(supabase_client: FakeSupabaseClient) -> SupabaseQueries:
    return SupabaseQueries(supabase_client)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 7, 15, 10, 30, tzinfo=timezone.utc))


@pytest.fixture
async def client(db: SupabaseQueries) -> AsyncGenerator[AsyncClient, None]:
    """Create test client with the persistence handle overridden"""
    app.dependency_overrides[get_db] = lambda: db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url='http://test') as ac:
        yield ac

    app.dependency_overrides.clear()


def make_student(**overrides) -> dict:
    student = {
        'roll_number': f"CS{fake.unique.random_number(digits=7, fix_len=True)}",
        'first_name': fake.first_name(),
        'last_name': fake.last_name(),
        'email': fake.unique.email().lower(),
        'phone': '9876543210',
        'date_of_birth': '2003-04-12',
        'gender': 'Male',
        'department': 'Computer Science',
        'semester': 3,
        'batch': '2022',
        'status': 'Active',
        'parent_name': fake.name(),
        'parent_phone': '9123456780',
    }
    student.update(overrides)
    return student


def make_staff(**overrides) -> dict:
    staff = {
        'employee_id': f"EMP{fake.unique.random_number(digits=5, fix_len=True)}",
        'first_name': fake.first_name(),
        'last_name': fake.last_name(),
        'email': fake.unique.email().lower(),
        'phone': '9876501234',
        'date_of_birth': '1985-09-01',
        'gender': 'Female',
        'department': 'Computer Science',
        'designation': 'Assistant Professor',
        'qualification': 'M.Tech',
        'experience': 8,
        'salary': 65000,
        'status': 'Active',
        'subjects': ['Data Structures'],
    }
    staff.update(overrides)
    return staff


def make_fee(roll_number: str, **overrides) -> dict:
    fee = {
        'roll_number': roll_number,
        'academic_year': '2024-25',
        'semester': 3,
        'fee_type': 'Tuition Fee',
        'total_amount': 10000,
        'paid_amount': 0,
        'fine': 0,
        'discount': 0,
        'due_date': (date.today() + timedelta(days=30)).isoformat(),
    }
    fee.update(overrides)
    return fee


@pytest.fixture
async def student(db: SupabaseQueries) -> dict:
    """A stored student row"""
    return await db.insert_one('students', make_student())


@pytest.fixture
async def admin_user(db: SupabaseQueries) -> dict:
    """A stored superadmin account"""
    return await db.insert_one('admins', {
        'username': 'superadmin',
        'email': 'admin@college.com',
        'password_hash': hash_password(ADMIN_PASSWORD),
        'role': 'superadmin',
        'is_active': True,
        'login_attempts': 0,
        'lock_until': None,
        'bootstrap': True,
        'version': 1,
    })


@pytest.fixture
def admin_auth_headers(admin_user: dict) -> dict:
    """Generate authentication headers for the superadmin"""
    token = create_access_token({'sub': admin_user['admin_id'], 'role': admin_user['role']})
    return {'Authorization': f'Bearer {token}'}
