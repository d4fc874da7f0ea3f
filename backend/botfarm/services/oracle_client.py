"""
Oracle Client - the single shared way bots call the judgment/generation oracle

Every call:
- is bounded by a hard timeout (asyncio.wait_for)
- is retried a fixed number of times with a fixed delay
- has its JSON payload parsed and validated (pydantic response model)
- goes through a per-run circuit breaker
- optionally hits an in-memory response cache

Exhaustion is not an exception: invoke() returns None and the caller counts
the item as failed. Prompt text is opaque here; tasks carry it in.
"""
import asyncio
import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, Dict, Any, Type, Callable, Awaitable

import openai
from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

from ..config.database import OracleConfig
from .cache import ResponseCache, make_key
from .circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class OracleError(Exception):
    """Base class for oracle call failures."""


class TransientOracleFailure(OracleError):
    """Timeout, API error or unparseable payload. Retried."""


class OracleValidationError(OracleError):
    """Payload parsed but failed its structural check. Retried."""


@dataclass
class OracleTask:
    """
    One kind of oracle request.

    instructions: system prompt supplied by the prompt layer (opaque)
    response_model: pydantic model the JSON payload must satisfy
    check: extra structural check, raises OracleValidationError
    """
    name: str
    instructions: str
    response_model: Optional[Type[BaseModel]] = None
    check: Optional[Callable[[Dict[str, Any]], None]] = None
    temperature: float = 0.2


@dataclass
class OracleStats:
    calls: int = 0
    successes: int = 0
    failures: int = 0
    retries: int = 0
    cache_hits: int = 0
    short_circuited: int = 0

    def to_dict(self) -> Dict[str, int]:
        return dict(self.__dict__)


_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def parse_json_payload(text: Optional[str]) -> Dict[str, Any]:
    """
    Parse an oracle reply into a JSON object.

    Accepts bare JSON, JSON inside a ``` fence, or JSON embedded in prose
    (the outermost {...} span is used).

    Raises:
        TransientOracleFailure: no JSON object could be extracted
    """
    if not text or not text.strip():
        raise TransientOracleFailure("Empty oracle response")

    candidates = [text.strip()]
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = text.find('{'), text.rfind('}')
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            data = json.loads(candidate)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data

    raise TransientOracleFailure(f"No JSON object in oracle response: {text[:80]!r}")


class OracleClient:
    """
    Oracle invocation with timeout, retry, validation, breaker and cache.

    One instance per bot run; the breaker state must not leak across runs.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = 120.0,
        max_retries: int = 3,
        retry_delay_seconds: float = 10.0,
        breaker: Optional[CircuitBreaker] = None,
        cache: Optional[ResponseCache] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self.client = client
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.breaker = breaker or CircuitBreaker()
        self.cache = cache
        self._sleep = sleep
        self.stats = OracleStats()

    @classmethod
    def from_config(cls, config: OracleConfig) -> 'OracleClient':
        cache = None
        if config.cache_ttl_seconds > 0:
            cache = ResponseCache(ttl_seconds=config.cache_ttl_seconds)

        return cls(
            client=AsyncOpenAI(api_key=config.api_key),
            model=config.model,
            timeout_seconds=config.timeout_seconds,
            max_retries=config.max_retries,
            retry_delay_seconds=config.retry_delay_seconds,
            breaker=CircuitBreaker(failure_threshold=config.breaker_threshold),
            cache=cache,
        )

    async def invoke(self, task: OracleTask, payload: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Call the oracle for one task.

        Returns:
            Validated JSON object, or None when every attempt failed or the
            circuit breaker is open
        """
        cache_key = None
        if self.cache is not None:
            cache_key = make_key(task.name, {'instructions': task.instructions, 'input': payload})
            cached = self.cache.lookup(cache_key)
            if cached is not None:
                self.stats.cache_hits += 1
                return cached

        if not self.breaker.allow_request():
            self.stats.short_circuited += 1
            logger.warning(f"⚠️ Circuit breaker open, skipping oracle call for {task.name}")
            return None

        self.stats.calls += 1
        last_error = None

        for attempt in range(1, self.max_retries + 1):
            try:
                result = await asyncio.wait_for(
                    self._call(task, payload),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                last_error = f"timed out after {self.timeout_seconds}s"
            except OracleError as e:
                last_error = str(e)
            except openai.OpenAIError as e:
                last_error = f"{type(e).__name__}: {e}"
            else:
                self.breaker.record_success()
                self.stats.successes += 1
                if cache_key is not None:
                    self.cache.store(cache_key, result)
                return result

            logger.warning(
                f"⚠️ Oracle {task.name} attempt {attempt}/{self.max_retries} failed: {last_error}"
            )
            if attempt < self.max_retries:
                self.stats.retries += 1
                await self._sleep(self.retry_delay_seconds)

        self.breaker.record_failure()
        self.stats.failures += 1
        logger.error(f"❌ Oracle {task.name} failed after {self.max_retries} attempts: {last_error}")
        return None

    async def _call(self, task: OracleTask, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": task.instructions},
                {"role": "user", "content": json.dumps(payload, default=str)},
            ],
            response_format={"type": "json_object"},
            temperature=task.temperature,
        )

        choices = getattr(response, 'choices', None)
        if not choices or getattr(choices[0], 'message', None) is None:
            raise TransientOracleFailure(f"{task.name} response has no message")

        data = parse_json_payload(choices[0].message.content)

        if task.response_model is not None:
            try:
                data = task.response_model.model_validate(data).model_dump()
            except ValidationError as e:
                raise OracleValidationError(
                    f"{task.name} payload failed validation: {e.error_count()} errors"
                ) from e

        if task.check is not None:
            try:
                task.check(data)
            except OracleError:
                raise
            except Exception as e:
                raise OracleValidationError(f"{task.name} check failed: {e}") from e

        return data
