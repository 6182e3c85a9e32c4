"""
college_erp/services/auth_guard.py
Admin authentication: credential checks, brute-force lockout and the
first-admin bootstrap
"""
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Tuple, Union
import logging

from college_erp.core.config import settings
from college_erp.core.exceptions import (
    AccountDeactivatedError, AccountLockedError, AdminNotFoundError,
    ConflictError, ForbiddenError, InvalidCredentialsError
)
from college_erp.core.security import (
    create_access_token, create_refresh_token, hash_password, verify_password
)
from college_erp.db.supabase import SupabaseQueries
from college_erp.models.schemas import AdminRole, Token

logger = logging.getLogger(__name__)

ADMIN_TABLE = "admins"
MAX_TRANSITION_RETRIES = 10


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================
# LOCKOUT STATE MACHINE
# ============================================

@dataclass(frozen=True)
class Unlocked:
    attempts: int = 0


@dataclass(frozen=True)
class Locked:
    until: datetime


LockoutState = Union[Unlocked, Locked]


@dataclass(frozen=True)
class LockoutPolicy:
    max_attempts: int = 5
    lock_duration: timedelta = timedelta(hours=2)

    @classmethod
    def from_settings(cls) -> "LockoutPolicy":
        return cls(
            max_attempts=settings.MAX_LOGIN_ATTEMPTS,
            lock_duration=timedelta(minutes=settings.LOCK_DURATION_MINUTES)
        )


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def lockout_state_from_row(row: Dict[str, Any]) -> LockoutState:
    lock_until = _parse_timestamp(row.get("lock_until"))
    if lock_until is not None:
        return Locked(until=lock_until)
    return Unlocked(attempts=row.get("login_attempts") or 0)


def lockout_state_to_row(state: LockoutState) -> Dict[str, Any]:
    if isinstance(state, Locked):
        return {"login_attempts": 0, "lock_until": state.until.isoformat()}
    return {"login_attempts": state.attempts, "lock_until": None}


def is_locked(state: LockoutState, now: datetime) -> bool:
    return isinstance(state, Locked) and now < state.until


def register_failure(state: LockoutState, now: datetime, policy: LockoutPolicy) -> LockoutState:
    if isinstance(state, Locked):
        if now < state.until:
            return state
        # Lock window elapsed; counting starts over
        state = Unlocked()

    attempts = state.attempts + 1
    if attempts >= policy.max_attempts:
        return Locked(until=now + policy.lock_duration)
    return Unlocked(attempts=attempts)


def register_success() -> LockoutState:
    return Unlocked()


# ============================================
# SERVICE
# ============================================

def public_admin(row: Dict[str, Any]) -> Dict[str, Any]:
    """Strip secrets and lockout bookkeeping from an admin row."""
    hidden = {"password_hash", "login_attempts", "lock_until", "version", "bootstrap"}
    return {k: v for k, v in row.items() if k not in hidden}


def issue_tokens(admin: Dict[str, Any]) -> Token:
    token_data = {"sub": str(admin["admin_id"]), "role": admin["role"]}
    return Token(
        access_token=create_access_token(token_data),
        refresh_token=create_refresh_token(token_data),
        token_type="bearer",
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60
    )


class AuthGuard:
    """Admin credential verification with per-account lockout."""

    def __init__(
        self,
        db: SupabaseQueries,
        policy: Optional[LockoutPolicy] = None,
        clock: Callable[[], datetime] = utcnow
    ):
        self.db = db
        self.policy = policy or LockoutPolicy.from_settings()
        self.clock = clock

    async def authenticate(self, email: str, password: str) -> Tuple[Token, Dict[str, Any]]:
        """
        Verify credentials and issue tokens.

        Raises:
            InvalidCredentialsError: unknown email or wrong password
            AccountLockedError: the account is inside its lock window
            AccountDeactivatedError: the account was deactivated
        """
        admin = await self.db.select_one(ADMIN_TABLE, {"email": email.lower()})
        if not admin:
            raise InvalidCredentialsError()

        if is_locked(lockout_state_from_row(admin), self.clock()):
            logger.warning(f"Login attempt on locked account {admin['admin_id']}")
            raise AccountLockedError()

        if not admin.get("is_active", True):
            raise AccountDeactivatedError()

        if not verify_password(password, admin["password_hash"]):
            admin = await self._transition(
                admin,
                lambda state, now: register_failure(state, now, self.policy)
            )
            state = lockout_state_from_row(admin)
            if isinstance(state, Locked):
                logger.warning(f"Account {admin['admin_id']} locked until {state.until.isoformat()}")
            else:
                logger.warning(f"Failed login for {admin['admin_id']} ({state.attempts} attempt(s))")
            raise InvalidCredentialsError()

        admin = await self._transition(
            admin,
            lambda state, now: register_success(),
            extra={"last_login": self.clock().isoformat()}
        )
        logger.info(f"Admin logged in: {admin['email']}")
        return issue_tokens(admin), public_admin(admin)

    async def _transition(
        self,
        admin: Dict[str, Any],
        step: Callable[[LockoutState, datetime], LockoutState],
        extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Apply a lockout transition with a compare-and-set on ``version``.

        When another request wrote the account first, the row is re-read and
        the transition applied again to the fresh state.
        """
        for _ in range(MAX_TRANSITION_RETRIES):
            now = self.clock()
            version = admin.get("version") or 1
            new_state = step(lockout_state_from_row(admin), now)
            data = {
                **lockout_state_to_row(new_state),
                **(extra or {}),
                "version": version + 1,
                "updated_at": now.isoformat(),
            }
            row = await self.db.update_where(
                ADMIN_TABLE,
                {"admin_id": admin["admin_id"], "version": version},
                data
            )
            if row is not None:
                return row

            logger.info(f"Lockout state of {admin['admin_id']} changed concurrently; re-reading")
            admin = await self.db.select_by_id(ADMIN_TABLE, "admin_id", admin["admin_id"])
            if admin is None:
                raise InvalidCredentialsError()

        raise ConflictError("Account is being modified concurrently; try again")

    async def refresh(self, admin_id: str) -> Token:
        """
        Issue a fresh token pair for the account a valid refresh token names.

        The account is reloaded so deactivation, lockout and role changes
        take effect on the next refresh.
        """
        admin = await self.db.select_by_id(ADMIN_TABLE, "admin_id", admin_id)
        if not admin:
            raise InvalidCredentialsError()
        if not admin.get("is_active", True):
            raise AccountDeactivatedError()
        if is_locked(lockout_state_from_row(admin), self.clock()):
            raise AccountLockedError()
        return issue_tokens(admin)

    async def change_password(self, admin_id: str, current_password: str, new_password: str) -> None:
        admin = await self.db.select_by_id(ADMIN_TABLE, "admin_id", admin_id)
        if not admin:
            raise AdminNotFoundError(admin_id)

        if not verify_password(current_password, admin["password_hash"]):
            raise InvalidCredentialsError("Current password is incorrect")

        await self.db.update_by_id(ADMIN_TABLE, "admin_id", admin_id, {
            "password_hash": hash_password(new_password),
            "updated_at": self.clock().isoformat(),
        })
        logger.info(f"Password changed for admin: {admin_id}")

    async def get_admin(self, admin_id: str) -> Dict[str, Any]:
        admin = await self.db.select_by_id(ADMIN_TABLE, "admin_id", admin_id)
        if not admin:
            raise AdminNotFoundError(admin_id)
        return public_admin(admin)

    # ============================================
    # ACCOUNT CREATION
    # ============================================

    async def register_first_admin(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """
        Self-service registration, open only while no admin exists.
        The first account is always a superadmin, whatever role was asked for.
        """
        if await self.db.count(ADMIN_TABLE) > 0:
            raise ForbiddenError("Admin registration is restricted. Contact system administrator.")

        requested = fields.get("role")
        if requested and requested != AdminRole.SUPERADMIN.value:
            logger.warning(f"Bootstrap registration requested role {requested}; creating superadmin")

        try:
            admin = await self._insert_admin(fields, AdminRole.SUPERADMIN, bootstrap=True)
        except ConflictError:
            # The bootstrap row is guarded by a unique index; losing that race
            # means another first admin was created in the meantime.
            if await self.db.count(ADMIN_TABLE) > 0:
                raise ForbiddenError("Admin registration is restricted. Contact system administrator.")
            raise

        logger.info(f"Bootstrap superadmin registered: {admin['email']}")
        return admin

    async def create_admin(self, fields: Dict[str, Any], actor_id: str) -> Dict[str, Any]:
        """Superadmin-only creation of further accounts."""
        role = AdminRole(fields.get("role") or AdminRole.ADMIN.value)
        admin = await self._insert_admin(fields, role, bootstrap=False, created_by=actor_id)
        logger.info(f"Admin {admin['email']} ({role.value}) created by {actor_id}")
        return admin

    async def _insert_admin(
        self,
        fields: Dict[str, Any],
        role: AdminRole,
        bootstrap: bool,
        created_by: Optional[str] = None
    ) -> Dict[str, Any]:
        email = fields["email"].lower()
        username = fields["username"].strip()

        if await self.db.exists(ADMIN_TABLE, {"email": email}) or \
                await self.db.exists(ADMIN_TABLE, {"username": username}):
            raise ConflictError("Admin with this email or username already exists")

        row = {
            "username": username,
            "email": email,
            "password_hash": hash_password(fields["password"]),
            "role": role.value,
            "is_active": True,
            "login_attempts": 0,
            "lock_until": None,
            "bootstrap": bootstrap,
            "created_by": created_by,
            "version": 1,
        }
        admin = await self.db.insert_one(ADMIN_TABLE, row)
        return public_admin(admin)
