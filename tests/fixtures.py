"""
In-memory stand-ins for the Supabase client used by the service tests.

FakeSupabaseClient answers the schema().from_().select()... chains issued by
DataStore with rows held in a dict keyed by table name, and records every
query it executes.
"""

from typing import Any, Dict, List, Optional

from postgrest.exceptions import APIError


class FakeResponse:
    def __init__(self, data: Any):
        self.data = data


class FakeQuery:
    """Chainable query builder that filters rows on execute()."""

    def __init__(self, client: "FakeSupabaseClient", schema: str, table: str):
        self.client = client
        self.schema = schema
        self.table = table
        self.columns = "*"
        self.filters: List[tuple] = []
        self.order_by: Optional[str] = None
        self.descending = False
        self.row_limit: Optional[int] = None
        self.is_single = False

    def select(self, columns: str = "*"):
        self.columns = columns
        return self

    def eq(self, column, value):
        self.filters.append(("eq", column, value))
        return self

    def gte(self, column, value):
        self.filters.append(("gte", column, value))
        return self

    def lte(self, column, value):
        self.filters.append(("lte", column, value))
        return self

    def in_(self, column, values):
        self.filters.append(("in", column, list(values)))
        return self

    def order(self, column, desc=False):
        self.order_by = column
        self.descending = desc
        return self

    def limit(self, count):
        self.row_limit = count
        return self

    def single(self):
        self.is_single = True
        return self

    def filter_value(self, op: str, column: str) -> Any:
        for kind, col, value in self.filters:
            if kind == op and col == column:
                return value
        return None

    def _keep(self, row: Dict[str, Any]) -> bool:
        for kind, column, value in self.filters:
            actual = row.get(column)
            if kind == "eq" and str(actual) != str(value):
                return False
            if kind == "in" and actual not in value:
                return False
            if kind in ("gte", "lte"):
                if actual is None:
                    return False
                if kind == "gte" and str(actual) < str(value):
                    return False
                if kind == "lte" and str(actual) > str(value):
                    return False
        return True

    def execute(self) -> FakeResponse:
        self.client.executed.append(self)

        error = self.client.errors.get(self.table)
        if error is not None:
            raise error

        rows = [dict(row) for row in self.client.tables.get(self.table, []) if self._keep(row)]
        if self.order_by:
            rows.sort(key=lambda row: str(row.get(self.order_by) or ""), reverse=self.descending)
        if self.row_limit:
            rows = rows[:self.row_limit]

        if self.is_single:
            if len(rows) != 1:
                raise APIError({
                    "message": "JSON object requested, multiple (or no) rows returned",
                    "code": "PGRST116",
                    "hint": None,
                    "details": f"The result contains {len(rows)} rows",
                })
            return FakeResponse(rows[0])
        return FakeResponse(rows)


class _SchemaScope:
    def __init__(self, client: "FakeSupabaseClient", schema: str):
        self.client = client
        self.schema = schema

    def from_(self, table: str) -> FakeQuery:
        return FakeQuery(self.client, self.schema, table)


class FakeFunctions:
    """Edge function stub; responses may be payloads or exceptions to raise."""

    def __init__(self, responses: Optional[Dict[str, Any]] = None):
        self.responses = responses or {}
        self.calls: List[tuple] = []

    def invoke(self, function_name: str, invoke_options: Optional[Dict[str, Any]] = None):
        self.calls.append((function_name, invoke_options))
        response = self.responses[function_name]
        if isinstance(response, Exception):
            raise response
        return response


class FakeSupabaseClient:
    def __init__(
        self,
        tables: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        functions: Optional[Dict[str, Any]] = None,
    ):
        self.tables = tables or {}
        self.errors = errors or {}
        self.executed: List[FakeQuery] = []
        self.functions = FakeFunctions(functions)

    def schema(self, name: str) -> _SchemaScope:
        return _SchemaScope(self, name)

    def queries_on(self, table: str) -> List[FakeQuery]:
        return [q for q in self.executed if q.table == table]


def api_error(message: str = "relation does not exist", code: str = "42P01") -> APIError:
    return APIError({"message": message, "code": code, "hint": None, "details": None})


def transaction_row(**overrides) -> Dict[str, Any]:
    """A successful Stripe transaction row of unified_transactions."""
    row = {
        "transaction_id": "txn_001",
        "transaction_date": "2025-01-15",
        "created_at": "2025-01-15T03:00:00+00:00",
        "amount": 10.0,
        "currency": "USD",
        "payment_provider": "stripe",
        "subscription_plan": "1month",
        "status": "success",
        "user_id": "user_1",
        "email": "one@example.com",
        "order_info": "Lumist Premium 1 month",
        "processing_seconds": 2,
    }
    row.update(overrides)
    return row


SAMPLE_TRANSACTIONS = [
    transaction_row(),
    transaction_row(
        transaction_id="zp_002",
        transaction_date="2025-01-16",
        created_at="2025-01-16T05:00:00+00:00",
        amount=261000,
        currency="VND",
        payment_provider="zalopay",
        subscription_plan="3months",
        user_id="user_2",
        email="two@example.com",
        order_info="Lumist Premium 3 months",
        processing_seconds=4,
    ),
    transaction_row(
        transaction_id="vn_003",
        transaction_date="2025-01-17",
        created_at="2025-01-17T08:30:00+00:00",
        amount=522000,
        currency="VND",
        payment_provider="vnpay",
        subscription_plan="3months",
        user_id="user_3",
        email="three@example.com",
        order_info="Lumist Premium, 3 months",
        processing_seconds=None,
    ),
    transaction_row(
        transaction_id="txn_004",
        transaction_date="2025-01-17",
        created_at="2025-01-17T09:00:00+00:00",
        amount=30.0,
        status="failed",
        user_id="user_4",
        email="four@example.com",
        processing_seconds=6,
    ),
    transaction_row(
        transaction_id="txn_005",
        transaction_date="2025-01-18",
        created_at="2025-01-18T10:00:00+00:00",
        amount=20.0,
        status="pending",
        subscription_plan=None,
        user_id="user_1",
        processing_seconds=None,
    ),
]

EXCHANGE_RATES = [
    {"rate_date": "2025-01-15", "currency_code": "VND", "rate_to_usd": 26100.0},
    {"rate_date": "2025-01-15", "currency_code": "EUR", "rate_to_usd": 0.9},
]
