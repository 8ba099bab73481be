"""
Supabase record store for message log entries and bookings
Matches the dashboard schema (messages, appointments tables)
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from supabase import Client, create_client

logger = logging.getLogger(__name__)

MESSAGES_TABLE = "messages"
APPOINTMENTS_TABLE = "appointments"


class SupabaseRecordStore:
    """Insert/query-by-key wrapper around the Supabase client.

    Failures are logged and returned as results; the caller-visible reply
    never waits on or fails because of a database write.
    """

    def __init__(self, supabase_url: str = "", supabase_key: str = "", client: Optional[Client] = None):
        self.supabase: Optional[Client] = client
        if self.supabase is None and supabase_url and supabase_key:
            try:
                self.supabase = create_client(supabase_url, supabase_key)
                logger.info(f"✅ Supabase record store initialized: {supabase_url}")
            except Exception as e:
                logger.error(f"❌ Supabase client init failed: {e}")
                self.supabase = None
        self.enabled = self.supabase is not None
        if not self.enabled:
            logger.warning("Supabase not configured - records will not be stored")

    async def insert(self, table: str, record: Dict[str, Any]) -> Dict[str, Any]:
        if not self.enabled:
            return {"success": False, "error": "Supabase not configured"}
        try:
            result = await asyncio.to_thread(
                lambda: self.supabase.table(table).insert([record]).execute()  # type: ignore[union-attr]
            )
            logger.info(f"💾 Inserted record into {table}")
            return {"success": True, "data": result.data}
        except Exception as e:
            logger.error(f"❌ Insert into {table} failed: {e}")
            return {"success": False, "error": str(e)}

    async def select_by(self, table: str, column: str, value: Any) -> List[Dict[str, Any]]:
        if not self.enabled:
            return []
        try:
            result = await asyncio.to_thread(
                lambda: self.supabase.table(table).select("*").eq(column, value).execute()  # type: ignore[union-attr]
            )
            return result.data or []
        except Exception as e:
            logger.error(f"❌ Query on {table}.{column} failed: {e}")
            return []
