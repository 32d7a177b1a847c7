"""Transaction report: select transactions and hand them to the mailer edge function."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any, Dict, List, Tuple

import httpx

from lumist_analytics.core.config import Settings, settings as default_settings
from lumist_analytics.core.exceptions import EdgeFunctionError, ReportError
from lumist_analytics.core.observability import get_logger, log_edge_function
from lumist_analytics.db.supabase_client import DataStore
from lumist_analytics.models.report import (
    PAYMENT_PROVIDERS,
    TRANSACTION_STATUSES,
    TransactionReportRequest,
    TransactionReportResult,
)

logger = get_logger(__name__)

REPORT_FUNCTION = "send-transaction-report"
TRANSACTIONS_VIEW = "unified_transactions"


def resolve_date_range(request: TransactionReportRequest, today: date | None = None) -> Tuple[date, date]:
    """Start and end date of the report; preset frames count back from today."""
    if request.time_frame == "custom":
        return request.custom_start_date, request.custom_end_date
    today = today or date.today()
    return today - timedelta(days=int(request.time_frame)), today


def _describe(selected: List[str], every: Tuple[str, ...]) -> str:
    if not selected or set(selected) >= set(every):
        return "All"
    return ", ".join(selected)


def describe_filters(request: TransactionReportRequest, start: date, end: date) -> Dict[str, str]:
    return {
        "startDate": start.isoformat(),
        "endDate": end.isoformat(),
        "providers": _describe(request.providers, PAYMENT_PROVIDERS),
        "statuses": _describe(request.statuses, TRANSACTION_STATUSES),
    }


class ReportService:
    def __init__(
        self,
        store: DataStore,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.store = store
        self.settings = settings or default_settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            timeout = httpx.Timeout(self.settings.request_timeout_seconds)
            self._client = httpx.AsyncClient(timeout=timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch_transactions(
        self,
        request: TransactionReportRequest,
        start: date,
        end: date,
    ) -> List[Dict[str, Any]]:
        """
        Newest transactions created within [start, end] matching the filters.

        Raises:
            DataStoreError: If the query fails
            ReportError: If nothing matches
        """
        in_ = {}
        if request.providers and _describe(request.providers, PAYMENT_PROVIDERS) != "All":
            in_["payment_provider"] = request.providers
        if request.statuses and _describe(request.statuses, TRANSACTION_STATUSES) != "All":
            in_["status"] = request.statuses

        rows = await self.store.select(
            TRANSACTIONS_VIEW,
            gte={"created_at": f"{start.isoformat()}T00:00:00"},
            lte={"created_at": f"{end.isoformat()}T23:59:59"},
            in_=in_,
            order="created_at",
            desc=True,
            limit=self.settings.report_transaction_limit,
        )
        if not rows:
            raise ReportError("No transactions found matching your filters")
        return rows

    async def send(
        self,
        request: TransactionReportRequest,
        today: date | None = None,
    ) -> TransactionReportResult:
        """
        Fetch matching transactions and post them to the report function.

        Raises:
            ReportError: If no transactions match
            EdgeFunctionError: If the function answers with a non-2xx status
        """
        start, end = resolve_date_range(request, today)
        transactions = await self.fetch_transactions(request, start, end)
        filters = describe_filters(request, start, end)

        client = await self._ensure_client()
        url = f"{self.settings.edge_functions_url}/{REPORT_FUNCTION}"
        logger.info(
            f"Sending report of {len(transactions)} transactions to {len(request.recipients)} recipient(s)"
        )
        try:
            response = await client.post(
                url,
                headers={"Authorization": f"Bearer {self.settings.social_supabase_key}"},
                json={
                    "recipients": request.recipients,
                    "transactions": transactions,
                    "filters": filters,
                },
            )
        except httpx.HTTPError as e:
            log_edge_function(REPORT_FUNCTION, "error")
            logger.error(f"Report function unreachable: {e}")
            raise EdgeFunctionError(f"Failed to send report: {e}", REPORT_FUNCTION) from e

        if not response.is_success:
            log_edge_function(REPORT_FUNCTION, "error")
            try:
                error = response.json().get("error")
            except (ValueError, AttributeError):
                error = None
            message = error or f"HTTP {response.status_code}"
            logger.error(f"Report function failed: {message}")
            raise EdgeFunctionError(message, REPORT_FUNCTION)

        log_edge_function(REPORT_FUNCTION, "ok")
        return TransactionReportResult(
            start_date=start,
            end_date=end,
            recipients=len(request.recipients),
            transactions=len(transactions),
            message=f"Report sent successfully to {len(request.recipients)} recipient(s)!",
        )
