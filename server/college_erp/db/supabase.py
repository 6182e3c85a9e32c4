"""
college_erp/db/supabase.py
Supabase client and the table helpers the services persist through
"""
from supabase import create_client, Client
from postgrest.exceptions import APIError
from college_erp.core.config import settings
from college_erp.core.exceptions import ConflictError, DatabaseError
from functools import lru_cache
from typing import Optional, Dict, List, Any
import logging

logger = logging.getLogger(__name__)

# PostgreSQL error code for unique_violation
UNIQUE_VIOLATION = "23505"
# PostgreSQL error code for foreign_key_violation
FOREIGN_KEY_VIOLATION = "23503"


@lru_cache()
def get_supabase_client() -> Client:
    """
    Cached Supabase client.

    Uses the service role key; row access is enforced by the API's own
    admin checks, not by row level security.
    """
    try:
        client: Client = create_client(
            supabase_url=settings.SUPABASE_URL,
            supabase_key=settings.SUPABASE_SERVICE_KEY
        )
        logger.info("Supabase client created successfully")
        return client
    except Exception as e:
        logger.error(f"Failed to create Supabase client: {e}")
        raise DatabaseError("connect to", "supabase") from e


def _filtered(query, filters: Optional[Dict[str, Any]], exclude: Optional[Dict[str, Any]] = None):
    for column, value in (filters or {}).items():
        query = query.eq(column, value)
    for column, value in (exclude or {}).items():
        query = query.neq(column, value)
    return query


def _translate(action: str, table: str, error: Exception) -> Exception:
    """Map a PostgREST failure onto the domain exception to raise."""
    if isinstance(error, APIError) and error.code == UNIQUE_VIOLATION:
        logger.warning(f"Unique violation on {action} {table}: {error.message}")
        return ConflictError(f"Duplicate record in {table}")
    if isinstance(error, APIError) and error.code == FOREIGN_KEY_VIOLATION:
        logger.warning(f"Foreign key violation on {action} {table}: {error.message}")
        return ConflictError(f"Record in {table} is still referenced by other records")
    logger.error(f"Error on {action} {table}: {error}")
    return DatabaseError(action, table)


class SupabaseQueries:
    """
    Thin async wrapper over the PostgREST table API.

    Every method takes the table name first; filters are column/value
    equality pairs. Unique violations surface as ``ConflictError``, any
    other failure as ``DatabaseError``.
    """

    def __init__(self, client: Client = None):
        self.client = client or get_supabase_client()

    # ============================================
    # CREATE
    # ============================================

    async def insert_one(self, table: str, data: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        try:
            response = self.client.table(table).insert(data).execute()
        except Exception as e:
            raise _translate("insert into", table, e) from e

        if not response.data:
            logger.warning(f"Insert into {table} returned no data")
            return None
        logger.info(f"Inserted record into {table}")
        return response.data[0]

    # ============================================
    # READ
    # ============================================

    async def select_all(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Rows matching ``filters``, optionally ordered and limited

        Example:
            >>> fees = await db.select_all(
            ...     "fee_details",
            ...     filters={"roll_number": "CS2023001"},
            ...     order_by="academic_year"
            ... )
        """
        try:
            query = _filtered(self.client.table(table).select("*"), filters)
            if order_by:
                query = query.order(order_by, desc=not ascending)
            if limit:
                query = query.limit(limit)
            response = query.execute()
        except Exception as e:
            raise _translate("select from", table, e) from e

        logger.info(f"Selected {len(response.data)} records from {table}")
        return response.data

    async def select_one(self, table: str, filters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        First row matching ``filters``, None if there is none

        Example:
            >>> admin = await db.select_one("admins", {"email": "admin@college.com"})
        """
        try:
            response = _filtered(self.client.table(table).select("*"), filters).limit(1).execute()
        except Exception as e:
            raise _translate("select from", table, e) from e

        return response.data[0] if response.data else None

    async def select_by_id(self, table: str, id_column: str, id_value: Any) -> Optional[Dict[str, Any]]:
        row = await self.select_one(table, {id_column: id_value})
        if row is None:
            logger.info(f"No record found in {table} with {id_column}={id_value}")
        return row

    async def count(self, table: str, filters: Optional[Dict[str, Any]] = None) -> int:
        try:
            query = _filtered(self.client.table(table).select("*", count="exact"), filters)
            response = query.limit(0).execute()
        except Exception as e:
            raise _translate("count", table, e) from e

        return response.count or 0

    async def exists(
        self,
        table: str,
        filters: Dict[str, Any],
        exclude: Optional[Dict[str, Any]] = None
    ) -> bool:
        """
        Whether a row matches ``filters`` without matching ``exclude``

        Example:
            >>> taken = await db.exists(
            ...     "students",
            ...     {"email": "john@example.com"},
            ...     exclude={"student_id": student_id}
            ... )
        """
        try:
            query = _filtered(self.client.table(table).select("*"), filters, exclude)
            response = query.limit(1).execute()
        except Exception as e:
            raise _translate("check", table, e) from e

        return len(response.data) > 0

    # ============================================
    # UPDATE
    # ============================================

    async def update_where(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        """
        Update the row matching every filter.

        Doubles as a compare-and-set when the filters include a version
        column: a stale version matches nothing and None is returned.

        Example:
            >>> updated = await db.update_where(
            ...     "fee_details",
            ...     {"fee_id": fee_id, "version": 3},
            ...     {"paid_amount": 5000, "version": 4}
            ... )
        """
        rows = await self.update_many(table, filters, data)
        if not rows:
            logger.info(f"Update in {table} matched no rows for {filters}")
            return None
        return rows[0]

    async def update_by_id(
        self,
        table: str,
        id_column: str,
        id_value: Any,
        data: Dict[str, Any]
    ) -> Optional[Dict[str, Any]]:
        return await self.update_where(table, {id_column: id_value}, data)

    async def update_many(
        self,
        table: str,
        filters: Dict[str, Any],
        data: Dict[str, Any]
    ) -> List[Dict[str, Any]]:
        try:
            response = _filtered(self.client.table(table).update(data), filters).execute()
        except Exception as e:
            raise _translate("update", table, e) from e

        logger.info(f"Updated {len(response.data)} records in {table}")
        return response.data

    # ============================================
    # DELETE
    # ============================================

    async def delete_by_id(self, table: str, id_column: str, id_value: Any) -> List[Dict[str, Any]]:
        try:
            response = self.client.table(table).delete().eq(id_column, id_value).execute()
        except Exception as e:
            raise _translate("delete from", table, e) from e

        logger.info(f"Deleted record from {table} with {id_column}={id_value}")
        return response.data


async def test_connection() -> bool:
    """Startup probe against the admins table."""
    try:
        get_supabase_client().table("admins").select("admin_id").limit(1).execute()
        logger.info("✓ Supabase connection test successful")
        return True
    except Exception as e:
        logger.error(f"✗ Supabase connection test failed: {e}")
        return False


__all__ = [
    'get_supabase_client',
    'SupabaseQueries',
    'test_connection',
    'UNIQUE_VIOLATION',
    'FOREIGN_KEY_VIOLATION',
]
