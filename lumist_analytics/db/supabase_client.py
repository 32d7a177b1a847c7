"""
Supabase Python SDK client configuration and read-only query layer.
Handles client creation, schema-scoped table queries and edge function calls.
"""
import asyncio
import json
import time
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional

from postgrest.exceptions import APIError
from supabase import Client, create_client

from lumist_analytics.core.config import settings
from lumist_analytics.core.exceptions import DataStoreError, EdgeFunctionError
from lumist_analytics.core.observability import get_logger, log_edge_function, log_query

logger = get_logger(__name__)

# PostgREST code returned by .single() when no row matches
NO_ROWS_CODE = "PGRST116"


@lru_cache()
def get_supabase_client() -> Client:
    """
    Create the Supabase client for the revenue project

    Returns:
        Configured Supabase client instance

    Raises:
        ValueError: If SUPABASE_URL or SUPABASE_KEY not configured
    """
    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL and SUPABASE_KEY must be configured in environment"
        )

    logger.info(f"Initializing Supabase client for {settings.supabase_url}")
    return create_client(settings.supabase_url, settings.supabase_key)


@lru_cache()
def get_social_client() -> Client:
    """
    Create the Supabase client for the social/proxy project

    Used for exchange rates, social analytics views and edge functions.

    Raises:
        ValueError: If SOCIAL_SUPABASE_URL or SOCIAL_SUPABASE_KEY not configured
    """
    if not settings.social_supabase_url or not settings.social_supabase_key:
        raise ValueError(
            "SOCIAL_SUPABASE_URL and SOCIAL_SUPABASE_KEY must be configured in environment"
        )

    logger.info(f"Initializing social Supabase client for {settings.social_supabase_url}")
    return create_client(settings.social_supabase_url, settings.social_supabase_key)


class _NoRows(Exception):
    """Internal signal for an empty single-row read."""


class DataStore:
    """
    Async, read-only wrapper around a schema of a Supabase project.

    Every call runs the synchronous client in a worker thread so that the
    independent queries of one request can be gathered together.
    """

    def __init__(self, client: Client, schema: str):
        self.client = client
        self.schema = schema

    def _table(self, table: str):
        return self.client.schema(self.schema).from_(table)

    async def select(
        self,
        table: str,
        columns: str = "*",
        *,
        eq: Optional[Dict[str, Any]] = None,
        gte: Optional[Dict[str, Any]] = None,
        lte: Optional[Dict[str, Any]] = None,
        in_: Optional[Dict[str, Iterable[Any]]] = None,
        order: Optional[str] = None,
        desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """
        Fetch rows from a table or view.

        Args:
            table: Table or view name within the store's schema
            columns: Column list passed to select()
            eq: Equality filters
            gte: Lower-bound (inclusive) filters
            lte: Upper-bound (inclusive) filters
            in_: Membership filters
            order: Column to order by
            desc: Order descending
            limit: Maximum number of rows

        Returns:
            List of row dicts (empty when nothing matches)

        Raises:
            DataStoreError: If the query fails
        """
        query = self._table(table).select(columns)
        for column, value in (eq or {}).items():
            query = query.eq(column, value)
        for column, value in (gte or {}).items():
            query = query.gte(column, value)
        for column, value in (lte or {}).items():
            query = query.lte(column, value)
        for column, values in (in_ or {}).items():
            query = query.in_(column, list(values))
        if order:
            query = query.order(order, desc=desc)
        if limit:
            query = query.limit(limit)

        response = await self._execute(table, query)
        return response.data or []

    async def single(self, table: str, columns: str = "*") -> Optional[Dict[str, Any]]:
        """
        Fetch the single row of a one-row view.

        Returns:
            Row dict, or None when the view is empty

        Raises:
            DataStoreError: If the query fails for any other reason
        """
        query = self._table(table).select(columns).single()
        try:
            response = await self._execute(table, query, tolerate_no_rows=True)
        except _NoRows:
            return None
        return response.data

    async def _execute(self, table: str, query, tolerate_no_rows: bool = False):
        start = time.perf_counter()
        try:
            response = await asyncio.to_thread(query.execute)
        except APIError as e:
            duration_ms = (time.perf_counter() - start) * 1000
            if tolerate_no_rows and e.code == NO_ROWS_CODE:
                log_query(table, "empty", duration_ms)
                raise _NoRows() from e
            log_query(table, "error", duration_ms)
            logger.error(f"Query on {self.schema}.{table} failed: {e.message}")
            raise DataStoreError(e.message or str(e), table=table) from e
        except Exception as e:
            log_query(table, "error", (time.perf_counter() - start) * 1000)
            logger.error(f"Query on {self.schema}.{table} failed: {e}")
            raise DataStoreError(str(e), table=table) from e

        data = response.data
        rows = len(data) if isinstance(data, list) else int(data is not None)
        log_query(table, "ok", (time.perf_counter() - start) * 1000, rows=rows)
        return response


async def invoke_function(
    client: Client,
    function_name: str,
    body: Dict[str, Any],
) -> Any:
    """
    Invoke a Supabase edge function and decode its JSON payload

    Args:
        client: Supabase client of the project hosting the function
        function_name: Edge function name (e.g. "get-sat-seats")
        body: JSON body sent to the function

    Returns:
        Decoded JSON payload

    Raises:
        EdgeFunctionError: If the call fails or the payload is not JSON
    """
    try:
        payload = await asyncio.to_thread(
            lambda: client.functions.invoke(
                function_name,
                invoke_options={"body": body, "responseType": "json"},
            )
        )
    except Exception as e:
        log_edge_function(function_name, "error")
        logger.error(f"Edge function {function_name} failed: {e}")
        raise EdgeFunctionError(str(e) or f"Failed to call {function_name}", function_name) from e

    if isinstance(payload, (bytes, str)):
        try:
            payload = json.loads(payload)
        except ValueError as e:
            log_edge_function(function_name, "error")
            raise EdgeFunctionError(
                f"Invalid response from {function_name}", function_name
            ) from e

    log_edge_function(function_name, "ok")
    return payload
