"""
Client facade for the budgeting API.

Each resource method only shapes a path, query and body and hands it to the
dispatcher; rate limiting, retries and error classification live below.
"""

import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from .auth import mask_api_token
from .core import RateLimiter
from .delta import DeltaPage, build_query
from .dispatcher import HttpDispatcher
from .exceptions import ConflictError
from .models import ApiResponse, ClientConfig, HealthStatus, QuotaStatus
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

DUPLICATE_PAYEE_HINT = (
    "A payee with this name may already exist. Look it up with get_payees "
    "or choose a different name."
)


class YnabClient:
    """
    Rate-limited, retrying client for the budgeting API.

    One instance owns one quota window; create separate instances for
    independent quotas.

    Example:
        ```python
        async with YnabClient(api_token=token) as client:
            page = await client.get_transactions(budget_id)
            later = await client.get_transactions(
                budget_id, since_cursor=page.server_knowledge
            )
        ```
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        httpx_client: Optional[httpx.AsyncClient] = None,
        rate_limiter: Optional[RateLimiter] = None,
        **options: Any,
    ):
        """
        Args:
            config: Full client configuration. Keyword ``options`` override
                its fields; without ``config`` they build one.
            httpx_client: Optional ``httpx.AsyncClient`` to send requests with.
            rate_limiter: Optional limiter, e.g. one with an injected clock.
            **options: ``ClientConfig`` fields such as ``api_token`` or
                ``rate_limit_requests``.
        """
        if config is None:
            config = ClientConfig(**options)
        elif options:
            config = ClientConfig(**{**config.model_dump(), **options})
        self.config = config

        self._limiter = rate_limiter or RateLimiter(
            capacity=config.rate_limit_requests,
            window_ms=config.rate_limit_window_ms,
        )
        self._retry = RetryPolicy(
            max_attempts=config.max_attempts,
            base_delay_ms=config.base_delay_ms,
            max_delay_ms=config.max_delay_ms,
        )
        self._dispatcher = HttpDispatcher(
            config, self._limiter, self._retry, httpx_client=httpx_client
        )
        logger.info(
            f"YnabClient initialized: base_url={config.base_url}, "
            f"token={mask_api_token(config.api_token)}"
        )

    def with_options(self, **options: Any) -> "YnabClient":
        """Create a new client with modified options and its own quota window."""
        return YnabClient(ClientConfig(**{**self.config.model_dump(), **options}))

    async def __aenter__(self) -> "YnabClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._dispatcher.aclose()

    # Transport helpers

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> ApiResponse:
        return await self._dispatcher.send("GET", path, params=params)

    async def _list(
        self,
        path: str,
        resource_key: str,
        since_cursor: Optional[int] = None,
        **filters: Any,
    ) -> DeltaPage:
        response = await self._dispatcher.send(
            "GET", path, params=build_query(since_cursor, **filters), collection=resource_key
        )
        return DeltaPage.from_response(response, resource_key, since_cursor)

    async def _one(self, path: str, resource_key: str) -> Dict[str, Any]:
        response = await self._get(path)
        return response.data.get(resource_key, response.data)

    # Budgets

    async def get_budgets(self) -> List[Dict[str, Any]]:
        response = await self._get("/budgets")
        return response.data.get("budgets", [])

    async def get_budget(self, budget_id: str) -> Dict[str, Any]:
        return await self._one(f"/budgets/{budget_id}", "budget")

    # Accounts

    async def get_accounts(self, budget_id: str, since_cursor: Optional[int] = None) -> DeltaPage:
        return await self._list(f"/budgets/{budget_id}/accounts", "accounts", since_cursor)

    async def get_account(self, budget_id: str, account_id: str) -> Dict[str, Any]:
        return await self._one(f"/budgets/{budget_id}/accounts/{account_id}", "account")

    # Transactions

    async def get_transactions(
        self,
        budget_id: str,
        since_date: Optional[str] = None,
        type: Optional[str] = None,
        since_cursor: Optional[int] = None,
    ) -> DeltaPage:
        """
        List transactions, optionally only those changed since ``since_cursor``.

        Args:
            since_date: Only transactions on or after this ISO date.
            type: ``"uncategorized"`` or ``"unapproved"``.
            since_cursor: ``server_knowledge`` from a previous call.
        """
        return await self._list(
            f"/budgets/{budget_id}/transactions",
            "transactions",
            since_cursor,
            since_date=since_date,
            type=type,
        )

    async def get_account_transactions(
        self,
        budget_id: str,
        account_id: str,
        since_date: Optional[str] = None,
        type: Optional[str] = None,
        since_cursor: Optional[int] = None,
    ) -> DeltaPage:
        return await self._list(
            f"/budgets/{budget_id}/accounts/{account_id}/transactions",
            "transactions",
            since_cursor,
            since_date=since_date,
            type=type,
        )

    async def get_transaction(self, budget_id: str, transaction_id: str) -> Dict[str, Any]:
        return await self._one(f"/budgets/{budget_id}/transactions/{transaction_id}", "transaction")

    async def create_transaction(self, budget_id: str, transaction: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._dispatcher.send(
            "POST", f"/budgets/{budget_id}/transactions", body={"transaction": transaction}
        )
        return response.data

    async def create_transactions(
        self, budget_id: str, transactions: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        response = await self._dispatcher.send(
            "POST", f"/budgets/{budget_id}/transactions", body={"transactions": transactions}
        )
        return response.data

    async def update_transaction(
        self, budget_id: str, transaction_id: str, transaction: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self._dispatcher.send(
            "PUT",
            f"/budgets/{budget_id}/transactions/{transaction_id}",
            body={"transaction": transaction},
        )
        return response.data

    async def update_transactions(
        self, budget_id: str, transactions: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Bulk update; each transaction must carry its ``id``."""
        response = await self._dispatcher.send(
            "PATCH", f"/budgets/{budget_id}/transactions", body={"transactions": transactions}
        )
        return response.data

    async def delete_transaction(self, budget_id: str, transaction_id: str) -> Dict[str, Any]:
        response = await self._dispatcher.send(
            "DELETE", f"/budgets/{budget_id}/transactions/{transaction_id}"
        )
        return response.data

    # Categories

    async def get_categories(self, budget_id: str, since_cursor: Optional[int] = None) -> DeltaPage:
        return await self._list(f"/budgets/{budget_id}/categories", "category_groups", since_cursor)

    async def get_category(self, budget_id: str, category_id: str) -> Dict[str, Any]:
        return await self._one(f"/budgets/{budget_id}/categories/{category_id}", "category")

    async def update_category_budget(
        self, budget_id: str, month: str, category_id: str, budgeted: int
    ) -> Dict[str, Any]:
        """Set the amount assigned to a category for ``month``, in milliunits."""
        response = await self._dispatcher.send(
            "PATCH",
            f"/budgets/{budget_id}/months/{month}/categories/{category_id}",
            body={"category": {"budgeted": budgeted}},
        )
        return response.data.get("category", response.data)

    # Payees

    async def get_payees(self, budget_id: str, since_cursor: Optional[int] = None) -> DeltaPage:
        return await self._list(f"/budgets/{budget_id}/payees", "payees", since_cursor)

    async def get_payee(self, budget_id: str, payee_id: str) -> Dict[str, Any]:
        return await self._one(f"/budgets/{budget_id}/payees/{payee_id}", "payee")

    async def create_payee(self, budget_id: str, name: str) -> Dict[str, Any]:
        try:
            response = await self._dispatcher.send(
                "POST", f"/budgets/{budget_id}/payees", body={"payee": {"name": name}}
            )
        except ConflictError as e:
            raise e.with_remediation(DUPLICATE_PAYEE_HINT) from e
        return response.data.get("payee", response.data)

    # Months

    async def get_budget_month(self, budget_id: str, month: str) -> Dict[str, Any]:
        """``month`` is an ISO date (first of month) or ``"current"``."""
        return await self._one(f"/budgets/{budget_id}/months/{month}", "month")

    # Scheduled transactions

    async def get_scheduled_transactions(
        self, budget_id: str, since_cursor: Optional[int] = None
    ) -> DeltaPage:
        return await self._list(
            f"/budgets/{budget_id}/scheduled_transactions", "scheduled_transactions", since_cursor
        )

    async def get_scheduled_transaction(
        self, budget_id: str, scheduled_transaction_id: str
    ) -> Dict[str, Any]:
        return await self._one(
            f"/budgets/{budget_id}/scheduled_transactions/{scheduled_transaction_id}",
            "scheduled_transaction",
        )

    async def create_scheduled_transaction(
        self, budget_id: str, scheduled_transaction: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self._dispatcher.send(
            "POST",
            f"/budgets/{budget_id}/scheduled_transactions",
            body={"scheduled_transaction": scheduled_transaction},
        )
        return response.data.get("scheduled_transaction", response.data)

    async def update_scheduled_transaction(
        self, budget_id: str, scheduled_transaction_id: str, scheduled_transaction: Dict[str, Any]
    ) -> Dict[str, Any]:
        response = await self._dispatcher.send(
            "PUT",
            f"/budgets/{budget_id}/scheduled_transactions/{scheduled_transaction_id}",
            body={"scheduled_transaction": scheduled_transaction},
        )
        return response.data.get("scheduled_transaction", response.data)

    async def delete_scheduled_transaction(
        self, budget_id: str, scheduled_transaction_id: str
    ) -> Dict[str, Any]:
        response = await self._dispatcher.send(
            "DELETE", f"/budgets/{budget_id}/scheduled_transactions/{scheduled_transaction_id}"
        )
        return response.data.get("scheduled_transaction", response.data)

    # Monitoring

    async def health_check(self) -> HealthStatus:
        """
        Probe the API with one budgets call and report latency.

        The probe never waits for quota and is not retried: an exhausted
        window reports ``unhealthy`` with the time until it resets.
        """
        start = time.perf_counter()
        outcome = await self._dispatcher.request("GET", "/budgets", block=False, max_attempts=1)
        latency_ms = (time.perf_counter() - start) * 1000
        if not outcome.ok:
            return HealthStatus(
                status="unhealthy",
                latency_ms=latency_ms,
                error=outcome.error.message,
                retry_after_ms=outcome.error.retry_after_ms,
            )
        return HealthStatus(status="healthy", latency_ms=latency_ms)

    def get_rate_limit_status(self) -> QuotaStatus:
        return self._limiter.get_status()

    def get_remaining_tokens(self) -> int:
        return self._limiter.get_remaining_tokens()

    def reset_rate_limit(self) -> None:
        """Reset the quota window. Intended for tests and administrative use."""
        self._limiter.reset_rate_limit()
