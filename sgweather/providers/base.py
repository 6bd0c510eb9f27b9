from __future__ import annotations

import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

import requests
from requests import Response

from ..breaker import CircuitBreaker


logger = logging.getLogger(__name__)

USER_AGENT = "Singapore-Weather-Cam/1.0"
CHUNK_SIZE = 8192


class ProviderError(RuntimeError):
    """Base provider error."""


class FetchError(ProviderError):
    """Raised when every attempt of a fetch failed."""


class CircuitOpenError(ProviderError):
    """Raised without attempting a request while the circuit breaker is open."""


class SchemaError(ProviderError):
    """Raised when an upstream payload does not have the expected shape."""


@dataclass
class RequestConfig:
    timeout: float = 10.0
    retries: int = 3
    backoff_base: float = 1.0
    headers: Dict[str, str] = field(default_factory=lambda: {"User-Agent": USER_AGENT})

    @classmethod
    def from_milliseconds(cls, timeout_ms: int, retries: int, **kwargs: Any) -> "RequestConfig":
        return cls(timeout=timeout_ms / 1000.0, retries=retries, **kwargs)


class RetryingFetcher:
    """GET JSON with a per-attempt deadline, bounded retries and jittered exponential backoff.

    ``timeout`` is a total deadline for each attempt: the body is streamed and
    the attempt fails once ``clock`` passes it, however slowly bytes trickle in.

    A call's retries are internal: the breaker only learns about the call's
    final outcome, once, so a burst of retries inside one call counts as a
    single failure.
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        request_config: Optional[RequestConfig] = None,
        breaker: Optional[CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
        jitter: Callable[[float, float], float] = random.uniform,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.request_config = request_config or RequestConfig()
        self.session = session or self._build_session(self.request_config)
        self.breaker = breaker or CircuitBreaker()
        self._sleep = sleep
        self._jitter = jitter
        self._clock = clock
        self._log = logging.getLogger(self.__class__.__name__)

    def _build_session(self, config: RequestConfig) -> requests.Session:
        session = requests.Session()
        session.headers.update(config.headers)
        return session

    def backoff_delay(self, attempt: int) -> float:
        base = self.request_config.backoff_base
        return (2 ** attempt) * base + self._jitter(0.0, base)

    def fetch_json(
        self,
        url: str,
        retries: Optional[int] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Any:
        attempts = max(1, retries if retries is not None else self.request_config.retries)
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            if not self.breaker.allow_request():
                raise CircuitOpenError(f"circuit open, skipping {url}")
            try:
                payload = self._attempt(url, params)
            except ProviderError as exc:
                last_error = exc
                self._log.warning("Attempt %d/%d failed for %s: %s", attempt + 1, attempts, url, exc)
                if attempt < attempts - 1:
                    delay = self.backoff_delay(attempt)
                    self._log.debug("Retrying %s in %.0fms", url, delay * 1000)
                    self._sleep(delay)
                continue
            self.breaker.record_result(True)
            return payload

        self.breaker.record_result(False)
        self._log.error("Giving up on %s after %d attempts", url, attempts)
        raise FetchError(f"{url} failed after {attempts} attempts: {last_error}") from last_error

    def _attempt(self, url: str, params: Optional[Mapping[str, Any]]) -> Any:
        # ``timeout`` bounds the whole attempt, headers and body included.
        timeout = self.request_config.timeout
        deadline = self._clock() + timeout
        try:
            response = self.session.get(url, params=params, timeout=timeout, stream=True)
        except requests.Timeout as exc:
            raise ProviderError(f"timeout after {timeout:g}s") from exc
        except requests.RequestException as exc:
            raise ProviderError(f"request failed: {exc}") from exc
        try:
            self._handle_response(response)
            body = self._read_body(response, deadline)
        finally:
            response.close()
        try:
            return json.loads(body)
        except ValueError as exc:
            raise ProviderError("invalid json") from exc

    def _read_body(self, response: Response, deadline: float) -> bytes:
        timeout = self.request_config.timeout
        chunks: List[bytes] = []
        try:
            if self._clock() > deadline:
                raise ProviderError(f"timeout after {timeout:g}s")
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                chunks.append(chunk)
                if self._clock() > deadline:
                    raise ProviderError(f"timeout after {timeout:g}s")
        except requests.Timeout as exc:
            raise ProviderError(f"timeout after {timeout:g}s") from exc
        except requests.RequestException as exc:
            raise ProviderError(f"request failed: {exc}") from exc
        return b"".join(chunks)

    def _handle_response(self, response: Response) -> Response:
        if not 200 <= response.status_code < 300:
            raise ProviderError(f"HTTP {response.status_code}: {response.reason or ''}".rstrip(": "))
        return response


__all__ = [
    "CircuitOpenError",
    "FetchError",
    "ProviderError",
    "RequestConfig",
    "RetryingFetcher",
    "SchemaError",
    "USER_AGENT",
]
