import asyncio
import logging
import time
from typing import Any, Awaitable, Callable

import httpx

from fomo_roaster import config, context, frameworks, github, llm, normalizer, prompts
from fomo_roaster.cache import ResultCache
from fomo_roaster.models import AnalysisResult, StructuredResult
from fomo_roaster.quota import QuotaGovernor
from fomo_roaster.store import Store

logger = logging.getLogger(__name__)

GITHUB_TIMEOUT = 30.0


class Analyzer:
    """Runs the select → summarize → prompt → generate → normalize pipeline."""

    def __init__(
        self,
        generator: llm.GenerationClient,
        cache: ResultCache,
        cfg: config.Config,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self.generator = generator
        self.cache = cache
        self.cfg = cfg
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, cfg: config.Config, store: Store, **kwargs: Any) -> "Analyzer":
        governor = QuotaGovernor(
            store,
            ceiling=cfg.quota.daily_generation_limit,
            key=cfg.quota.quota_key,
            window=cfg.quota.quota_window_seconds,
        )
        cache = ResultCache(store, prefix=cfg.cache.cache_prefix, ttl=cfg.cache.cache_ttl_seconds)
        generator = llm.GenerationClient.from_config(
            cfg, sleep=kwargs.get("sleep", asyncio.sleep), governor=governor,
        )
        return cls(generator, cache, cfg, **kwargs)

    async def roast(self, subject_id: str) -> AnalysisResult:
        return await self.analyze(subject_id, config.roast_profile(self.cfg))

    async def analyze_frameworks(self, subject_id: str) -> AnalysisResult:
        return await self.analyze(subject_id, config.analysis_profile(self.cfg))

    async def analyze(self, subject_id: str, profile: config.PipelineProfile) -> AnalysisResult:
        subject = github.parse_subject_id(subject_id)
        template = prompts.get_template(profile.template)
        key = self.cache.make_key(profile.name, template.version, subject.lower())
        return await self.cache.get_or_compute(key, lambda: self._run(subject, profile, template))

    async def _run(
        self,
        subject: str,
        profile: config.PipelineProfile,
        template: prompts.PromptTemplate,
    ) -> AnalysisResult:
        pipeline = self.cfg.pipeline
        logger.info(f"Running {profile.name} pipeline for {subject}")

        async with httpx.AsyncClient(timeout=GITHUB_TIMEOUT) as client:
            fetcher = github.RateLimitedFetcher(client, self.cfg.github_token, self._sleep, self._clock)
            repos = await github.list_top_repositories(
                fetcher, subject, profile.repo_limit, pipeline.per_page, pipeline.min_collected,
            )
            ctx = await context.build_context(
                fetcher, subject, repos, profile.concurrency, pipeline.max_languages, pipeline.max_files,
            )

            if profile.detect_frameworks:
                t0 = time.monotonic()
                summaries = await frameworks.detect_frameworks(
                    fetcher, self.generator, repos, ctx.summaries,
                    profile.concurrency, pipeline.max_manifest_chars,
                )
                ctx = ctx._replace(summaries=summaries)
                logger.info(f"Framework detection completed in {time.monotonic() - t0:.1f}s")

        context_text = context.render_context(ctx)
        prompt = prompts.render(template, context_text)
        logger.info(f"Built prompt: {len(prompt)} chars from {len(ctx.summaries)} repositories")

        t0 = time.monotonic()
        if template.output_format is prompts.OutputFormat.FREE_TEXT:
            result = normalizer.normalize(await self.generator.generate(prompt))
        else:
            result = await self._generate_structured(prompt, pipeline.max_parse_attempts)
        logger.info(f"Analysis generated in {time.monotonic() - t0:.1f}s")
        return result

    async def _generate_structured(self, prompt: str, max_attempts: int) -> StructuredResult:
        last_exc: normalizer.MalformedModelOutput | None = None
        for attempt in range(1, max_attempts + 1):
            raw = await self.generator.generate(prompt)
            try:
                return normalizer.parse(raw)
            except normalizer.MalformedModelOutput as exc:
                last_exc = exc
                logger.warning(f"Structured output attempt {attempt}/{max_attempts} malformed: {exc}")

        raise normalizer.MalformedModelOutput(
            f"Model output malformed after {max_attempts} attempts: {last_exc}"
        ) from last_exc
