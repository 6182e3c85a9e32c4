"""
Unit Tests for admin authentication and account lockout
"""
from datetime import datetime, timedelta, timezone

import pytest

from college_erp.core.exceptions import (
    AccountDeactivatedError, AccountLockedError, AdminNotFoundError,
    ConflictError, ForbiddenError, InvalidCredentialsError
)
from college_erp.core.security import verify_password, verify_token
from college_erp.services.auth_guard import (
    AuthGuard, Locked, LockoutPolicy, Unlocked, is_locked,
    lockout_state_from_row, lockout_state_to_row, register_failure,
    register_success
)

from conftest import ADMIN_PASSWORD

NOW = datetime(2024, 7, 15, 10, 30, tzinfo=timezone.utc)
POLICY = LockoutPolicy(max_attempts=5, lock_duration=timedelta(hours=2))


@pytest.fixture
def guard(db, clock) -> AuthGuard:
    return AuthGuard(db, POLICY, clock=clock)


class TestLockoutTransitions:
    """Pure state machine"""

    def test_failures_count_up_to_lock(self):
        state = Unlocked()
        for expected in range(1, 5):
            state = register_failure(state, NOW, POLICY)
            assert state == Unlocked(attempts=expected)

        state = register_failure(state, NOW, POLICY)

        assert state == Locked(until=NOW + timedelta(hours=2))
        assert is_locked(state, NOW)

    def test_failure_while_locked_keeps_lock(self):
        state = Locked(until=NOW + timedelta(minutes=30))

        assert register_failure(state, NOW, POLICY) == state

    def test_failure_after_lock_expired_starts_over(self):
        state = Locked(until=NOW - timedelta(seconds=1))

        assert not is_locked(state, NOW)
        assert register_failure(state, NOW, POLICY) == Unlocked(attempts=1)

    def test_lock_ends_exactly_at_until(self):
        until = NOW + timedelta(hours=2)

        assert is_locked(Locked(until=until), until - timedelta(microseconds=1))
        assert not is_locked(Locked(until=until), until)

    def test_success_resets(self):
        assert register_success() == Unlocked(attempts=0)

    def test_custom_policy(self):
        policy = LockoutPolicy(max_attempts=2, lock_duration=timedelta(minutes=15))

        state = register_failure(register_failure(Unlocked(), NOW, policy), NOW, policy)

        assert state == Locked(until=NOW + timedelta(minutes=15))

    def test_row_round_trip(self):
        assert lockout_state_from_row({'login_attempts': 3, 'lock_until': None}) == Unlocked(3)
        assert lockout_state_from_row({'login_attempts': 0, 'lock_until': '2024-07-15T12:30:00Z'}) == \
            Locked(until=datetime(2024, 7, 15, 12, 30, tzinfo=timezone.utc))
        assert lockout_state_to_row(Locked(until=NOW)) == {
            'login_attempts': 0, 'lock_until': NOW.isoformat()
        }
        assert lockout_state_to_row(Unlocked(2)) == {'login_attempts': 2, 'lock_until': None}


class TestAuthenticate:
    """Test login against stored accounts"""

    @pytest.mark.asyncio
    async def test_login_success(self, guard, admin_user, supabase_client, clock):
        token, admin = await guard.authenticate('Admin@College.com', ADMIN_PASSWORD)

        payload = verify_token(token.access_token)
        assert payload.sub == admin_user['admin_id']
        assert payload.role.value == 'superadmin'
        assert verify_token(token.refresh_token, expected_type='refresh').sub == admin_user['admin_id']
        assert token.token_type == 'bearer'
        assert 'password_hash' not in admin
        assert 'login_attempts' not in admin

        row = supabase_client.row('admins', admin_id=admin_user['admin_id'])
        assert row['last_login'] == clock().isoformat()

    @pytest.mark.asyncio
    async def test_unknown_email(self, guard, admin_user):
        with pytest.raises(InvalidCredentialsError):
            await guard.authenticate('nobody@college.com', ADMIN_PASSWORD)

    @pytest.mark.asyncio
    async def test_wrong_password_counts(self, guard, admin_user, supabase_client):
        with pytest.raises(InvalidCredentialsError):
            await guard.authenticate(admin_user['email'], 'wrong')

        row = supabase_client.row('admins', admin_id=admin_user['admin_id'])
        assert row['login_attempts'] == 1
        assert row['lock_until'] is None
        assert row['version'] == 2

    @pytest.mark.asyncio
    async def test_lock_after_five_failures_then_expiry(self, guard, admin_user, supabase_client, clock):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                await guard.authenticate(admin_user['email'], 'wrong')

        row = supabase_client.row('admins', admin_id=admin_user['admin_id'])
        assert row['login_attempts'] == 0
        assert row['lock_until'] == (clock() + timedelta(hours=2)).isoformat()

        # Correct password is refused while locked
        with pytest.raises(AccountLockedError):
            await guard.authenticate(admin_user['email'], ADMIN_PASSWORD)

        clock.advance(hours=1, minutes=59)
        with pytest.raises(AccountLockedError):
            await guard.authenticate(admin_user['email'], ADMIN_PASSWORD)

        clock.advance(minutes=1)
        token, _ = await guard.authenticate(admin_user['email'], ADMIN_PASSWORD)

        assert token.access_token
        row = supabase_client.row('admins', admin_id=admin_user['admin_id'])
        assert row['login_attempts'] == 0
        assert row['lock_until'] is None

    @pytest.mark.asyncio
    async def test_locked_attempts_do_not_extend_lock(self, guard, admin_user, supabase_client, clock):
        for _ in range(5):
            with pytest.raises(InvalidCredentialsError):
                await guard.authenticate(admin_user['email'], 'wrong')
        lock_until = supabase_client.row('admins', admin_id=admin_user['admin_id'])['lock_until']

        clock.advance(minutes=30)
        with pytest.raises(AccountLockedError):
            await guard.authenticate(admin_user['email'], 'wrong')

        assert supabase_client.row('admins', admin_id=admin_user['admin_id'])['lock_until'] == lock_until

    @pytest.mark.asyncio
    async def test_success_resets_counter(self, guard, admin_user, supabase_client):
        for _ in range(3):
            with pytest.raises(InvalidCredentialsError):
                await guard.authenticate(admin_user['email'], 'wrong')

        await guard.authenticate(admin_user['email'], ADMIN_PASSWORD)

        assert supabase_client.row('admins', admin_id=admin_user['admin_id'])['login_attempts'] == 0

    @pytest.mark.asyncio
    async def test_deactivated_account(self, guard, admin_user, supabase_client):
        supabase_client.row('admins', admin_id=admin_user['admin_id'])['is_active'] = False

        with pytest.raises(AccountDeactivatedError):
            await guard.authenticate(admin_user['email'], ADMIN_PASSWORD)

    @pytest.mark.asyncio
    async def test_concurrent_failures_are_not_lost(self, guard, admin_user, supabase_client):
        admin_id = admin_user['admin_id']

        def other_failure(client, table, filters):
            row = client.row('admins', admin_id=admin_id)
            row['login_attempts'] += 1
            row['version'] += 1

        supabase_client.before_update = other_failure

        with pytest.raises(InvalidCredentialsError):
            await guard.authenticate(admin_user['email'], 'wrong')

        row = supabase_client.row('admins', admin_id=admin_id)
        assert row['login_attempts'] == 2
        assert row['version'] == 3

    @pytest.mark.asyncio
    async def test_gives_up_under_constant_contention(self, guard, admin_user, db, monkeypatch):
        async def always_stale(*args, **kwargs):
            return None

        monkeypatch.setattr(db, 'update_where', always_stale)

        with pytest.raises(ConflictError):
            await guard.authenticate(admin_user['email'], 'wrong')


class TestRefresh:
    """Test token refresh against the stored account"""

    @pytest.mark.asyncio
    async def test_refresh_uses_stored_role(self, guard, admin_user, supabase_client):
        supabase_client.row('admins', admin_id=admin_user['admin_id'])['role'] = 'admin'

        token = await guard.refresh(admin_user['admin_id'])

        assert verify_token(token.access_token).role.value == 'admin'
        assert verify_token(token.refresh_token, expected_type='refresh').sub == admin_user['admin_id']

    @pytest.mark.asyncio
    async def test_refresh_deactivated_account(self, guard, admin_user, supabase_client):
        supabase_client.row('admins', admin_id=admin_user['admin_id'])['is_active'] = False

        with pytest.raises(AccountDeactivatedError):
            await guard.refresh(admin_user['admin_id'])

    @pytest.mark.asyncio
    async def test_refresh_deleted_account(self, guard):
        with pytest.raises(InvalidCredentialsError):
            await guard.refresh('gone')

    @pytest.mark.asyncio
    async def test_refresh_locked_account(self, guard, admin_user, supabase_client, clock):
        supabase_client.row('admins', admin_id=admin_user['admin_id'])['lock_until'] = \
            (clock() + timedelta(minutes=10)).isoformat()

        with pytest.raises(AccountLockedError):
            await guard.refresh(admin_user['admin_id'])


class TestAccounts:
    """Test password change and account creation"""

    @pytest.mark.asyncio
    async def test_change_password(self, guard, admin_user, supabase_client):
        await guard.change_password(admin_user['admin_id'], ADMIN_PASSWORD, 'NewPass@456')

        row = supabase_client.row('admins', admin_id=admin_user['admin_id'])
        assert verify_password('NewPass@456', row['password_hash'])

    @pytest.mark.asyncio
    async def test_change_password_wrong_current(self, guard, admin_user):
        with pytest.raises(InvalidCredentialsError) as exc:
            await guard.change_password(admin_user['admin_id'], 'wrong', 'NewPass@456')
        assert exc.value.message == 'Current password is incorrect'

    @pytest.mark.asyncio
    async def test_get_admin(self, guard, admin_user):
        admin = await guard.get_admin(admin_user['admin_id'])

        assert admin['email'] == 'admin@college.com'
        assert 'password_hash' not in admin

        with pytest.raises(AdminNotFoundError):
            await guard.get_admin('missing')

    @pytest.mark.asyncio
    async def test_first_admin_is_superadmin(self, guard, supabase_client):
        admin = await guard.register_first_admin({
            'username': 'founder',
            'email': 'Founder@College.com',
            'password': 'secret1',
            'role': 'admin',
        })

        assert admin['role'] == 'superadmin'
        assert admin['email'] == 'founder@college.com'
        row = supabase_client.row('admins', admin_id=admin['admin_id'])
        assert row['bootstrap'] is True
        assert row['password_hash'] != 'secret1'

    @pytest.mark.asyncio
    async def test_registration_closed_once_an_admin_exists(self, guard, admin_user):
        with pytest.raises(ForbiddenError):
            await guard.register_first_admin({
                'username': 'latecomer',
                'email': 'late@college.com',
                'password': 'secret1',
            })

    @pytest.mark.asyncio
    async def test_bootstrap_race_is_forbidden(self, guard, db, admin_user, monkeypatch):
        """Both requests saw an empty table; the unique bootstrap index decides"""
        counts = iter([0, 1])

        async def racing_count(*args, **kwargs):
            return next(counts)

        monkeypatch.setattr(db, 'count', racing_count)

        with pytest.raises(ForbiddenError):
            await guard.register_first_admin({
                'username': 'racer',
                'email': 'racer@college.com',
                'password': 'secret1',
            })

    @pytest.mark.asyncio
    async def test_create_admin(self, guard, admin_user):
        admin = await guard.create_admin({
            'username': 'clerk',
            'email': 'clerk@college.com',
            'password': 'secret1',
        }, actor_id=admin_user['admin_id'])

        assert admin['role'] == 'admin'
        assert admin['created_by'] == admin_user['admin_id']

    @pytest.mark.asyncio
    async def test_create_admin_duplicate(self, guard, admin_user):
        with pytest.raises(ConflictError):
            await guard.create_admin({
                'username': 'someone',
                'email': admin_user['email'],
                'password': 'secret1',
            }, actor_id=admin_user['admin_id'])
