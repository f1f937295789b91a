import logging
import time
import uuid
from typing import Any, Dict, Mapping, Optional

import httpx

from .auth import auth_headers, mask_api_token
from .core import RateLimiter
from .exceptions import ApiError, ErrorKind
from .models import ApiResponse, ClientConfig, Failure, Outcome, Success
from .retry import RetryPolicy
from .utils import classify_exception, classify_response

logger = logging.getLogger(__name__)


class HttpDispatcher:
    """
    Performs logical request/response cycles against the API.

    Each HTTP attempt takes one slot from the rate limiter; the sends run
    under the retry policy. Failures are classified here, once, into
    ``ApiError`` kinds.
    """

    def __init__(
        self,
        config: ClientConfig,
        rate_limiter: RateLimiter,
        retry_policy: RetryPolicy,
        *,
        httpx_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            config: Client settings (token, base URL, timeouts, blocking policy).
            rate_limiter: Limiter shared by every request of the owning client.
            retry_policy: Policy wrapped around each network send.
            httpx_client: Optional existing ``httpx.AsyncClient``. If not
                provided, one is created and closed by ``aclose``.
        """
        self.config = config
        self.rate_limiter = rate_limiter
        self.retry_policy = retry_policy
        self._headers = auth_headers(config.api_token)
        if httpx_client is not None:
            self._client = httpx_client
            self._managed_client = False
        else:
            self._client = httpx.AsyncClient(
                base_url=config.base_url,
                timeout=config.timeout_ms / 1000,
            )
            self._managed_client = True
        logger.debug(f"HttpDispatcher using token {mask_api_token(config.api_token)}")

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        body: Optional[Any] = None,
        collection: Optional[str] = None,
        skip_rate_limit: bool = False,
        block: Optional[bool] = None,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[int] = None,
        timeout_ms: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Outcome:
        """
        Run one logical request and report the result as an ``Outcome``.

        Every HTTP attempt, retries included, takes one slot from the rate
        limiter. A rejected first admission fails fast without a retry; a
        rejected retry admission is a ``RateLimitExceeded`` failure handed to
        the retry policy.

        Args:
            collection: Key of a list the ``data`` object must hold, together
                with ``server_knowledge``. Responses without them are
                VALIDATION failures.
            skip_rate_limit: Send without taking a quota slot.
            block: Overrides ``config.block_on_rate_limit`` for this request.
            max_attempts: Overrides the retry policy's attempts for this request.
            base_delay_ms: Overrides the retry policy's base delay for this request.
            timeout_ms: Overrides the client timeout for this request.
            headers: Extra headers merged over the defaults.

        Returns:
            ``Success(ApiResponse)`` or ``Failure(ApiError)``.
        """
        if block is None:
            block = self.config.block_on_rate_limit
        request_id = str(uuid.uuid4())

        if not skip_rate_limit:
            rejection = await self._admit(block, request_id)
            if rejection is not None:
                logger.warning(f"{method} {path} rejected: {rejection}")
                return Failure(rejection)

        attempts = 0

        async def attempt() -> Outcome:
            nonlocal attempts
            attempts += 1
            if attempts > 1 and not skip_rate_limit:
                rejection = await self._admit(block, request_id)
                if rejection is not None:
                    return Failure(rejection)
            return await self._send(
                method,
                path,
                params=params,
                body=body,
                request_id=request_id,
                collection=collection,
                timeout_ms=timeout_ms,
                extra_headers=headers,
            )

        outcome = await self.retry_policy.execute(
            attempt, max_attempts=max_attempts, base_delay_ms=base_delay_ms
        )
        if not outcome.ok:
            logger.error(f"{method} {path} failed: {outcome.error.to_dict()}")
        return outcome

    async def send(self, method: str, path: str, **options: Any) -> ApiResponse:
        """Like ``request`` but returns the ``ApiResponse`` or raises the ``ApiError``."""
        outcome = await self.request(method, path, **options)
        return outcome.unwrap()

    async def _admit(self, block: bool, request_id: str) -> Optional[ApiError]:
        """Take one quota slot; return the error to report when none is available."""
        admission = await self.rate_limiter.acquire(block=block)
        if admission.admitted:
            return None
        return ApiError.from_kind(
            ErrorKind.RATE_LIMIT_EXCEEDED,
            "Local request quota exhausted",
            retry_after_ms=int(admission.wait_seconds * 1000),
            request_id=request_id,
        )

    async def _send(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Mapping[str, Any]],
        body: Optional[Any],
        request_id: str,
        collection: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        extra_headers: Optional[Mapping[str, str]] = None,
    ) -> Outcome:
        headers = dict(self._headers)
        if extra_headers:
            headers.update(extra_headers)
        headers["X-Request-ID"] = request_id
        timeout = httpx.USE_CLIENT_DEFAULT if timeout_ms is None else timeout_ms / 1000
        logger.debug(
            f"API request: {method} {path} request_id={request_id} "
            f"has_body={body is not None}"
        )

        start = time.perf_counter()
        try:
            response = await self._client.request(
                method, path, params=params, json=body, headers=headers, timeout=timeout
            )
        except httpx.HTTPError as e:
            return Failure(classify_exception(e, request_id))

        duration_ms = (time.perf_counter() - start) * 1000
        logger.debug(
            f"API response: {response.status_code} {method} {path} "
            f"request_id={request_id} duration={duration_ms:.0f}ms "
            f"remaining_quota={self.rate_limiter.get_remaining_tokens()}"
        )

        if response.is_error:
            return Failure(classify_response(response, request_id))
        return self._decode(response, request_id, collection)

    @staticmethod
    def _decode(response: httpx.Response, request_id: str, collection: Optional[str] = None) -> Outcome:
        """Unwrap the ``{"data": {...}}`` envelope of a successful response."""
        if response.status_code == 204 or not response.content:
            return Success(ApiResponse(data={}, status_code=response.status_code))

        def invalid(message: str) -> Failure:
            return Failure(ApiError.from_kind(
                ErrorKind.VALIDATION,
                message,
                status_code=response.status_code,
                request_id=request_id,
            ))

        try:
            payload = response.json()
        except ValueError:
            return invalid("Response body is not valid JSON")

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return invalid("Response body is missing the data object")

        knowledge = data.get("server_knowledge")
        if isinstance(knowledge, bool) or not isinstance(knowledge, int):
            knowledge = None

        if collection is not None:
            if not isinstance(data.get(collection), list):
                return invalid(f"Response is missing the {collection!r} collection")
            if knowledge is None:
                return invalid(f"Response for {collection!r} is missing server_knowledge")

        return Success(ApiResponse(
            data=data,
            status_code=response.status_code,
            server_knowledge=knowledge,
        ))

    @property
    def headers(self) -> Dict[str, str]:
        """Outbound headers with the token masked, for diagnostics."""
        masked = dict(self._headers)
        masked["Authorization"] = f"Bearer {mask_api_token(self.config.api_token)}"
        return masked

    async def aclose(self) -> None:
        """Close the internal httpx client if it was created by this instance."""
        if self._managed_client and not self._client.is_closed:
            await self._client.aclose()
