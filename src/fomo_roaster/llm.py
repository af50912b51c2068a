import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache
from typing import Any, Awaitable, Callable

import httpx
import openai
from openai import AsyncOpenAI

from fomo_roaster import config
from fomo_roaster.quota import QuotaGovernor, Reservation

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = 3
BASE_DELAY = 1.0
GENERATION_TIMEOUT = 90.0


class LLMError(Exception):
    code = "upstream_failure"


class QuotaExceeded(LLMError):
    code = "quota_exceeded"


class GenerationFailure(LLMError):
    pass


class TransientGenerationFailure(GenerationFailure):
    pass


class PermanentGenerationFailure(GenerationFailure):
    pass


class EmptyCompletion(LLMError):
    pass


class ErrorSignal(str, Enum):
    QUOTA = "quota"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


class RetryState(str, Enum):
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"


_TRANSIENT_ERRORS = (openai.APIConnectionError, openai.InternalServerError, EmptyCompletion)


def classify_error(exc: Exception) -> ErrorSignal:
    """Quota signals and transient faults are retried, everything else is not."""
    message = str(exc)
    if isinstance(exc, openai.RateLimitError) or "429" in message or "quota" in message.lower():
        return ErrorSignal.QUOTA
    if isinstance(exc, _TRANSIENT_ERRORS):
        return ErrorSignal.TRANSIENT
    return ErrorSignal.PERMANENT


@dataclass(frozen=True)
class Backoff:
    """Exponential backoff: base, base*factor, base*factor**2, ..."""

    base_delay: float = BASE_DELAY
    factor: float = 2.0
    jitter: float = 0.0

    def next_delay(self, delay: float) -> float:
        return delay * self.factor

    def wait_time(self, delay: float) -> float:
        if not self.jitter:
            return delay
        return delay + random.uniform(0, delay * self.jitter)


@dataclass
class GenerationRequest:
    prompt: str
    max_attempts: int
    current_delay: float
    attempt: int = 0
    state: RetryState = RetryState.ATTEMPTING


Completion = Callable[[str], Awaitable[str]]


@lru_cache
def _get_client(api_key: str, base_url: str) -> AsyncOpenAI:
    # Retries are owned by GenerationClient, not the SDK
    return AsyncOpenAI(
        api_key=api_key,
        base_url=base_url,
        max_retries=0,
        http_client=httpx.AsyncClient(timeout=GENERATION_TIMEOUT),
    )


async def openai_completion(prompt: str) -> str:
    cfg = config.get_config()
    if not cfg.llm.gemini_api_key:
        raise PermanentGenerationFailure("GEMINI_API_KEY is not set")
    client = _get_client(cfg.llm.gemini_api_key, cfg.llm.gemini_base_url)

    response = await client.chat.completions.create(
        model=cfg.llm.model_name,
        messages=[{"role": "user", "content": prompt}],
        temperature=cfg.llm.temperature,
        timeout=GENERATION_TIMEOUT,
    )
    text = response.choices[0].message.content if response.choices else None
    if not text:
        raise EmptyCompletion("LLM returned empty response")
    return text


class GenerationClient:
    """Sends a prompt to the model, retrying quota and transient failures.

    Attempts run one after another. Between attempts the client sleeps for
    the current delay and then multiplies it by the backoff factor. Quota
    signals that outlast every attempt raise ``QuotaExceeded``; other
    retryable failures raise ``TransientGenerationFailure``. Permanent
    failures abort on the first attempt.

    With a ``governor`` every call to ``generate`` reserves one slot before
    the first attempt; retries inside that call do not reserve again.
    """

    def __init__(
        self,
        complete: Completion = openai_completion,
        max_attempts: int = MAX_ATTEMPTS,
        backoff: Backoff | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        governor: QuotaGovernor | None = None,
    ):
        self._complete = complete
        self.max_attempts = max_attempts
        self.backoff = backoff or Backoff()
        self._sleep = sleep
        self.governor = governor

    @classmethod
    def from_config(cls, cfg: config.Config, **kwargs: Any) -> "GenerationClient":
        backoff = Backoff(base_delay=cfg.llm.base_backoff_seconds, jitter=cfg.llm.backoff_jitter)
        return cls(max_attempts=cfg.llm.max_generation_attempts, backoff=backoff, **kwargs)

    async def generate(self, prompt: str) -> str:
        if self.governor is not None and await self.governor.check_and_reserve() is Reservation.DENIED:
            raise QuotaExceeded("Daily generation quota reached")

        request = GenerationRequest(prompt, self.max_attempts, self.backoff.base_delay)
        last_signal: ErrorSignal | None = None
        last_exc: Exception | None = None

        while True:
            if request.state is RetryState.ATTEMPTING:
                request.attempt += 1
                try:
                    text = await self._complete(request.prompt)
                except Exception as exc:
                    last_signal, last_exc = classify_error(exc), exc
                    logger.warning(
                        f"Generation attempt {request.attempt}/{request.max_attempts} failed "
                        f"({last_signal.value}): {exc}"
                    )
                    if last_signal is ErrorSignal.PERMANENT:
                        raise PermanentGenerationFailure(f"Generation failed: {exc}") from exc
                    if request.attempt < request.max_attempts:
                        request.state = RetryState.BACKOFF
                    else:
                        request.state = RetryState.EXHAUSTED
                    continue
                request.state = RetryState.SUCCEEDED
                return text

            if request.state is RetryState.BACKOFF:
                wait = self.backoff.wait_time(request.current_delay)
                logger.warning(f"Waiting {wait:.1f}s before generation attempt {request.attempt + 1}")
                await self._sleep(wait)
                request.current_delay = self.backoff.next_delay(request.current_delay)
                request.state = RetryState.ATTEMPTING
                continue

            # EXHAUSTED
            if last_signal is ErrorSignal.QUOTA:
                raise QuotaExceeded(
                    f"Generation quota still exceeded after {request.max_attempts} attempts"
                ) from last_exc
            raise TransientGenerationFailure(
                f"Generation failed after {request.max_attempts} attempts: {last_exc}"
            ) from last_exc
