"""Account endpoints: model listing and balance.

These plain GET endpoints are outside LiteLLM's scope, so they are called
with urllib in a thread executor to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import json
import logging
import urllib.error
import urllib.request

from pydantic import ValidationError

from deepseek_kit.errors import (
    APIError,
    DecodingError,
    HTTPStatusError,
    InsufficientBalanceError,
    InvalidAPIKeyError,
    NetworkError,
    RateLimitError,
    RequestTimeoutError,
    ServiceUnavailableError,
)
from deepseek_kit.schemas.account import BalanceResponse, ErrorResponse, Model, ModelsResponse
from deepseek_kit.schemas.config import ClientConfig

logger = logging.getLogger(__name__)

_STATUS_ERRORS = {
    401: InvalidAPIKeyError,
    402: InsufficientBalanceError,
    429: RateLimitError,
    503: ServiceUnavailableError,
}


def check_response(status: int, body: bytes) -> bytes:
    """Raise the matching error for a non-2xx or empty response.

    Returns the body unchanged when the response is usable.
    """
    if 200 <= status < 300:
        if not body.strip():
            raise APIError(
                "Endpoint returned an empty response",
                type="endpoint_not_available",
            )
        return body

    error_cls = _STATUS_ERRORS.get(status)
    if error_cls is not None:
        raise error_cls()

    try:
        detail = ErrorResponse.model_validate_json(body).error
    except ValidationError:
        raise HTTPStatusError(status) from None

    code = str(detail.code) if detail.code is not None else None
    raise APIError(detail.message, type=detail.type, code=code, param=detail.param)


def parse_models(body: bytes) -> list[Model]:
    """Decode a /models body. Accepts the list wrapper or a bare array."""
    try:
        data = json.loads(body)
        if isinstance(data, list):
            return [Model.model_validate(item) for item in data]
        return ModelsResponse.model_validate(data).data
    except (json.JSONDecodeError, ValidationError) as e:
        raise DecodingError(f"Could not decode model list: {e}") from e


class AccountAPI:
    """Client for the /models and /user/balance endpoints."""

    def __init__(self, api_key: str, *, config: ClientConfig | None = None) -> None:
        self._api_key = api_key
        self._config = config or ClientConfig()

    async def list_models(self) -> list[Model]:
        """Return the models available to this API key."""
        body = await self._get(f"{self._config.base_url.rstrip('/')}/models")
        return parse_models(body)

    async def get_balance(self) -> BalanceResponse:
        """Return the account balance in every currency."""
        body = await self._get(f"{self._config.root_url.rstrip('/')}/user/balance")
        try:
            return BalanceResponse.model_validate_json(body)
        except ValidationError as e:
            raise DecodingError(f"Could not decode balance: {e}") from e

    async def _get(self, url: str) -> bytes:
        if not self._api_key:
            raise InvalidAPIKeyError()

        req = urllib.request.Request(
            url,
            headers={
                "Accept": "application/json",
                "Authorization": f"Bearer {self._api_key}",
            },
            method="GET",
        )
        logger.debug("GET %s", url)

        # Run blocking HTTP call in thread pool to avoid blocking the loop
        loop = asyncio.get_running_loop()
        status, body = await loop.run_in_executor(
            None, self._send_request, req, self._config.timeout
        )
        return check_response(status, body)

    @staticmethod
    def _send_request(req: urllib.request.Request, timeout: float) -> tuple[int, bytes]:
        """Synchronous HTTP send (runs in executor)."""
        try:
            with urllib.request.urlopen(req, timeout=timeout) as resp:
                return resp.status, resp.read()
        except urllib.error.HTTPError as e:
            return e.code, e.read()
        except TimeoutError as e:
            raise RequestTimeoutError(f"Request to {req.full_url} timed out") from e
        except urllib.error.URLError as e:
            # Connect timeouts arrive wrapped in URLError
            if isinstance(e.reason, TimeoutError):
                raise RequestTimeoutError(f"Request to {req.full_url} timed out") from e
            raise NetworkError(f"Request to {req.full_url} failed: {e}") from e
        except OSError as e:
            raise NetworkError(f"Request to {req.full_url} failed: {e}") from e
