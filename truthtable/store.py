"""
Supabase data-store access for TruthTable.

Wraps the supabase-py query builder behind a small table-oriented
interface (select, insert, upsert, update) so the pipeline components can
be handed any object with the same methods.

Requirements:
- Supabase project with the users, dream_dna, transcripts_raw,
  transcripts_vectorized, conversation_sessions and call_transcripts tables
- SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_ANON_KEY) set
"""

import logging
from typing import Any, Dict, List, Optional

from supabase import create_client, Client

from truthtable.config import Settings
from truthtable.errors import PersistenceError

logger = logging.getLogger(__name__)


def get_supabase_client(settings: Settings) -> Client:
    """
    Initialize and return a Supabase client.

    Args:
        settings: Loaded settings

    Returns:
        Supabase client instance

    Raises:
        ValueError: If Supabase credentials are not set
    """
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY environment variables must be set. "
            "See .env.example for configuration details."
        )

    return create_client(settings.supabase_url, settings.supabase_key)


class SupabaseStore:
    """Table-level operations against a Supabase project."""

    def __init__(self, client: Client):
        self.client = client

    def _apply_filters(self, query, filters: Optional[Dict[str, Any]]):
        for column, value in (filters or {}).items():
            query = query.eq(column, value)
        return query

    def select_one(
        self,
        table: str,
        filters: Dict[str, Any],
        columns: str = "*",
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch the first row matching all equality filters.

        Args:
            table: Table name
            filters: Column -> value equality filters
            columns: Column list for the select

        Returns:
            Row dictionary or None if nothing matched

        Raises:
            PersistenceError: If the query fails
        """
        rows = self.select_many(table, filters=filters, columns=columns, limit=1)
        return rows[0] if rows else None

    def select_many(
        self,
        table: str,
        filters: Optional[Dict[str, Any]] = None,
        columns: str = "*",
        order_by: Optional[str] = None,
        descending: bool = True,
        limit: Optional[int] = None,
        exclude: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch rows matching equality filters.

        Args:
            table: Table name
            filters: Column -> value equality filters
            columns: Column list for the select
            order_by: Optional column to sort by
            descending: Sort direction when order_by is given
            limit: Maximum number of rows
            exclude: Column -> value pairs the row must NOT equal (nulls match)

        Returns:
            List of row dictionaries (possibly empty)

        Raises:
            PersistenceError: If the query fails
        """
        try:
            query = self.client.table(table).select(columns)
            query = self._apply_filters(query, filters)
            for column, value in (exclude or {}).items():
                query = query.or_(f"{column}.is.null,{column}.neq.{value}")
            if order_by:
                query = query.order(order_by, desc=descending)
            if limit:
                query = query.limit(limit)
            result = query.execute()
            return result.data or []
        except Exception as e:
            logger.error(f"Select from {table} failed: {e}")
            raise PersistenceError(f"Select from {table} failed: {e}", store=table) from e

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """
        Insert a single row.

        Returns:
            The inserted row as returned by the database, or an empty dict
        """
        try:
            result = self.client.table(table).insert(row).execute()
            return result.data[0] if result.data else {}
        except Exception as e:
            logger.error(f"Insert into {table} failed: {e}")
            raise PersistenceError(f"Insert into {table} failed: {e}", store=table) from e

    def upsert(self, table: str, row: Dict[str, Any], on_conflict: str) -> Dict[str, Any]:
        """
        Insert or update a single row keyed by the on_conflict columns.

        Args:
            table: Table name
            row: Row values
            on_conflict: Comma-separated unique key columns (e.g. "user_id,session_id")
        """
        try:
            result = self.client.table(table).upsert(row, on_conflict=on_conflict).execute()
            return result.data[0] if result.data else {}
        except Exception as e:
            logger.error(f"Upsert into {table} failed: {e}")
            raise PersistenceError(f"Upsert into {table} failed: {e}", store=table) from e

    def update(
        self,
        table: str,
        values: Dict[str, Any],
        filters: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """Update all rows matching the equality filters."""
        try:
            query = self._apply_filters(self.client.table(table).update(values), filters)
            result = query.execute()
            return result.data or []
        except Exception as e:
            logger.error(f"Update of {table} failed: {e}")
            raise PersistenceError(f"Update of {table} failed: {e}", store=table) from e
