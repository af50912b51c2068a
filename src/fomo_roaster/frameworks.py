import asyncio
import logging

from fomo_roaster import github, llm, normalizer, prompts
from fomo_roaster.models import RepositoryRef, RepositorySummary

logger = logging.getLogger(__name__)

NO_MANIFEST = "N"
MAX_MANIFEST_CHARS = 8_000


def _clean_pick(text: str) -> str:
    return normalizer.normalize(text).strip("`'\" \n").strip()


def parse_framework_list(text: str) -> tuple[str, ...]:
    text = normalizer.normalize(text)
    if "=" in text:
        text = text.split("=", 1)[1]
    names = []
    for item in text.strip().strip("[]").split(","):
        name = item.strip().strip("`'\"*-").strip()
        if name and name.lower() not in ("none", "nothing", "n/a") and name not in names:
            names.append(name)
    return tuple(names)


async def detect_for_repository(
    fetcher: github.RateLimitedFetcher,
    generator: llm.GenerationClient,
    repo: RepositoryRef,
    summary: RepositorySummary,
    max_manifest_chars: int = MAX_MANIFEST_CHARS,
) -> tuple[str, ...]:
    if not summary.top_level_files:
        return ()

    pick = _clean_pick(
        await generator.generate(prompts.build_manifest_selection_prompt(list(summary.top_level_files)))
    )
    if pick.upper() == NO_MANIFEST or pick not in summary.top_level_files:
        logger.info(f"No usable manifest picked for {repo.name} (got {pick[:60]!r})")
        return ()

    content = await github.fetch_file_content(fetcher, repo, pick)
    if not content:
        return ()
    if len(content) > max_manifest_chars:
        content = content[:max_manifest_chars] + "\n... (truncated)"

    reply = await generator.generate(prompts.build_framework_prompt(pick, content))
    return parse_framework_list(reply)


async def detect_frameworks(
    fetcher: github.RateLimitedFetcher,
    generator: llm.GenerationClient,
    repos: list[RepositoryRef],
    summaries: tuple[RepositorySummary, ...],
    concurrency: int = 5,
    max_manifest_chars: int = MAX_MANIFEST_CHARS,
) -> tuple[RepositorySummary, ...]:
    """Return ``summaries`` with ``frameworks`` filled in, same order.

    A repository whose detection fails keeps an empty framework list;
    ``QuotaExceeded`` is not swallowed.
    """
    semaphore = asyncio.Semaphore(max(1, concurrency))

    async def _detect_one(repo: RepositoryRef, summary: RepositorySummary) -> RepositorySummary:
        async with semaphore:
            try:
                found = await detect_for_repository(fetcher, generator, repo, summary, max_manifest_chars)
            except (github.GitHubError, llm.GenerationFailure) as exc:
                logger.warning(f"Framework detection failed for {repo.name}: {exc}")
                found = ()
        return summary._replace(frameworks=found)

    return tuple(await asyncio.gather(*[_detect_one(r, s) for r, s in zip(repos, summaries)]))
