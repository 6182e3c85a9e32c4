"""
Unit Tests for the Supabase table helpers
"""
import pytest
from postgrest.exceptions import APIError

from college_erp.core.exceptions import ConflictError, DatabaseError

from conftest import make_student


class TestSupabaseQueries:

    @pytest.mark.asyncio
    async def test_insert_unique_violation_is_conflict(self, db):
        first = await db.insert_one('students', make_student())

        with pytest.raises(ConflictError):
            await db.insert_one('students', make_student(roll_number=first['roll_number']))

    @pytest.mark.asyncio
    async def test_update_where_is_compare_and_set(self, db):
        fee = await db.insert_one('fee_details', {
            'roll_number': 'CS1', 'academic_year': '2024-25', 'semester': 1,
            'fee_type': 'Exam Fee', 'version': 1,
        })

        assert await db.update_where('fee_details', {'fee_id': fee['fee_id'], 'version': 2}, {'version': 3}) is None

        row = await db.update_where('fee_details', {'fee_id': fee['fee_id'], 'version': 1}, {'version': 2})
        assert row['version'] == 2

    @pytest.mark.asyncio
    async def test_count_and_exists(self, db):
        one = await db.insert_one('students', make_student(department='Civil'))
        await db.insert_one('students', make_student(department='Civil'))

        assert await db.count('students') == 2
        assert await db.count('students', {'department': 'Civil'}) == 2
        assert await db.exists('students', {'email': one['email']})
        assert not await db.exists('students', {'email': one['email']}, exclude={'student_id': one['student_id']})

    @pytest.mark.asyncio
    async def test_other_failures_become_database_errors(self, db, supabase_client, monkeypatch):
        def broken(name):
            raise RuntimeError('connection reset')

        monkeypatch.setattr(supabase_client, 'table', broken)

        with pytest.raises(DatabaseError) as exc:
            await db.select_all('students')
        assert exc.value.message == 'Failed to select from students'
        assert exc.value.status_code == 500

    @pytest.mark.asyncio
    async def test_foreign_key_violation_is_conflict(self, db, supabase_client, monkeypatch):
        def referenced(name):
            raise APIError({
                'code': '23503',
                'message': 'update or delete on table "students" violates foreign key constraint',
                'details': 'Key is still referenced from table "fee_details".',
                'hint': None,
            })

        monkeypatch.setattr(supabase_client, 'table', referenced)

        with pytest.raises(ConflictError) as exc:
            await db.delete_by_id('students', 'student_id', 'some-student')
        assert exc.value.status_code == 409
        assert exc.value.message == 'Record in students is still referenced by other records'
