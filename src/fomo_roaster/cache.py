import asyncio
import json
import logging
from typing import Awaitable, Callable

from fomo_roaster.models import AnalysisResult, StructuredResult
from fomo_roaster.store import Store, StoreError

logger = logging.getLogger(__name__)

DEFAULT_TTL = 86_400


def dump_result(result: AnalysisResult) -> str:
    if isinstance(result, StructuredResult):
        return json.dumps({"structured": result.model_dump(by_alias=True)})
    return json.dumps({"text": result})


def load_result(raw: str) -> AnalysisResult:
    data = json.loads(raw)
    if "structured" in data:
        return StructuredResult.model_validate(data["structured"])
    return data["text"]


class ResultCache:
    """Memoizes pipeline results in ``store`` for ``ttl`` seconds.

    Concurrent callers asking for the same uncached key in this process
    share one computation. A failing store is treated as a miss.
    """

    def __init__(self, store: Store, prefix: str = "result", ttl: float = DEFAULT_TTL):
        self._store = store
        self.prefix = prefix
        self.ttl = ttl
        self._inflight: dict[str, asyncio.Future] = {}

    def make_key(self, *parts: str) -> str:
        return ":".join((self.prefix, *parts))

    async def _get(self, key: str) -> AnalysisResult | None:
        try:
            raw = await self._store.get(key)
        except StoreError as exc:
            logger.error(f"Cache read failed for {key}: {exc}")
            return None
        if raw is None:
            return None
        try:
            return load_result(raw)
        except (ValueError, KeyError) as exc:
            logger.warning(f"Discarding unreadable cache entry {key}: {exc}")
            return None

    async def _set(self, key: str, result: AnalysisResult, ttl: float) -> None:
        try:
            await self._store.set(key, dump_result(result), ttl)
        except StoreError as exc:
            logger.error(f"Cache write failed for {key}: {exc}")

    async def get_or_compute(
        self,
        key: str,
        compute: Callable[[], Awaitable[AnalysisResult]],
        ttl: float | None = None,
    ) -> AnalysisResult:
        cached = await self._get(key)
        if cached is not None:
            logger.info(f"Cache hit for {key}")
            return cached

        pending = self._inflight.get(key)
        if pending is not None:
            logger.info(f"Joining in-flight computation for {key}")
            return await pending

        future = asyncio.ensure_future(compute())
        self._inflight[key] = future
        try:
            result = await future
        finally:
            self._inflight.pop(key, None)

        await self._set(key, result, self.ttl if ttl is None else ttl)
        return result
