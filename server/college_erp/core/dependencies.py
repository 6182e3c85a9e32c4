from fastapi import Depends
from college_erp.db.supabase import SupabaseQueries, get_supabase_client
from college_erp.services.auth_guard import AuthGuard, LockoutPolicy
from college_erp.services.fee_ledger import FeeLedgerService


def get_db() -> SupabaseQueries:
    """
    Persistence handle for a request. Tests override this dependency.
    """
    return SupabaseQueries(get_supabase_client())


def get_fee_ledger(db: SupabaseQueries = Depends(get_db)) -> FeeLedgerService:
    return FeeLedgerService(db)


def get_auth_guard(db: SupabaseQueries = Depends(get_db)) -> AuthGuard:
    return AuthGuard(db, LockoutPolicy.from_settings())
