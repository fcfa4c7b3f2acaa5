"""
Executor Adapter
================
Runs the external provisioning operation and normalizes its result.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
import structlog

from . import metrics
from .exceptions import ProvisioningError
from .models import ExecutionOutcome

logger = structlog.get_logger(__name__)

# Async callable that raises on failure
ProvisioningOperation = Callable[[Any], Awaitable[Any]]


class ExecutorAdapter:
    """
    Wraps a provisioning operation with a timeout.

    The operation is a black box: any exception, or running past the
    timeout, is a failure whose text is only carried forward and logged.

    Example:
        adapter = ExecutorAdapter(provision_email_account, timeout_seconds=30)
        outcome = await adapter.execute(job.payload)
    """

    def __init__(self, operation: ProvisioningOperation, timeout_seconds: float = 60.0):
        self.operation = operation
        self.timeout_seconds = timeout_seconds

    async def execute(self, payload: Any) -> ExecutionOutcome:
        start = time.monotonic()
        try:
            await asyncio.wait_for(self.operation(payload), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            outcome = ExecutionOutcome.failed(
                f"Provisioning timed out after {self.timeout_seconds:g}s",
                duration_seconds=time.monotonic() - start,
            )
        except Exception as e:
            outcome = ExecutionOutcome.failed(
                str(e) or type(e).__name__,
                duration_seconds=time.monotonic() - start,
            )
        else:
            outcome = ExecutionOutcome.ok(duration_seconds=time.monotonic() - start)

        metrics.record_execution(outcome.success, outcome.duration_seconds)
        return outcome


class HttpProvisioningExecutor:
    """
    Provisioning operation that POSTs the payload to an HTTP endpoint.

    Transport errors and non-2xx responses raise ProvisioningError.
    No retries here: retrying is the scheduler's job.
    """

    def __init__(
        self,
        base_url: str,
        path: str = "/internal/provision",
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.path = path
        headers: Dict[str, str] = {
            "User-Agent": "provisioning-retry-worker",
            "Accept": "application/json",
        }
        if api_key:
            headers["X-Internal-Secret"] = api_key

        self.client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            headers=headers,
        )

    async def aclose(self):
        """Close the underlying HTTP client."""
        await self.client.aclose()

    async def __call__(self, payload: Any) -> Any:
        try:
            response = await self.client.post(self.path, json=payload)
            response.raise_for_status()
        except httpx.TimeoutException:
            raise ProvisioningError("Provisioning request timed out")
        except httpx.HTTPStatusError as e:
            raise ProvisioningError(
                "Provisioning request rejected",
                status_code=e.response.status_code,
                details=e.response.text,
            )
        except httpx.HTTPError as e:
            raise ProvisioningError(f"Failed to reach provisioning service: {e}")

        if response.status_code == 204 or not response.content:
            return None
        return response.json()
