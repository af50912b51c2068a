import asyncio
import logging

from fomo_roaster import github
from fomo_roaster.models import AnalysisContext, RepositoryRef, RepositorySummary

logger = logging.getLogger(__name__)

MAX_LANGUAGES = 5
MAX_FILES = 15
SEPARATOR = "---"


async def summarize_repository(
    fetcher: github.RateLimitedFetcher,
    repo: RepositoryRef,
    max_languages: int = MAX_LANGUAGES,
    max_files: int = MAX_FILES,
) -> RepositorySummary:
    # GitHub returns languages largest first, so the first keys are the top ones
    languages = await github.fetch_languages(fetcher, repo)
    files = await github.fetch_top_level_files(fetcher, repo)
    return RepositorySummary(
        name=repo.name,
        description=repo.description,
        languages=tuple(languages[:max_languages]),
        top_level_files=tuple(files[:max_files]),
        updated_at=repo.updated_at,
    )


async def build_context(
    fetcher: github.RateLimitedFetcher,
    subject_id: str,
    repos: list[RepositoryRef],
    concurrency: int = 1,
    max_languages: int = MAX_LANGUAGES,
    max_files: int = MAX_FILES,
) -> AnalysisContext:
    """Summarize ``repos`` in order, fetching at most ``concurrency`` at once."""
    if concurrency <= 1:
        summaries = [
            await summarize_repository(fetcher, repo, max_languages, max_files)
            for repo in repos
        ]
    else:
        semaphore = asyncio.Semaphore(concurrency)

        async def _summarize_one(repo: RepositoryRef) -> RepositorySummary:
            async with semaphore:
                return await summarize_repository(fetcher, repo, max_languages, max_files)

        # gather preserves argument order
        summaries = await asyncio.gather(*[_summarize_one(r) for r in repos])

    logger.info(f"Summarized {len(summaries)} repositories for {subject_id}")
    return AnalysisContext(subject_id=subject_id, summaries=tuple(summaries))


def render_summary(summary: RepositorySummary) -> str:
    lines = [
        f"Repository: {summary.name}",
        f"Description: {summary.description or 'None'}",
        f"Languages: {', '.join(summary.languages)}",
        f"Files: {', '.join(summary.top_level_files)}",
    ]
    if summary.frameworks:
        lines.append(f"Frameworks: {', '.join(summary.frameworks)}")
    return "\n".join(lines) + f"\n\n{SEPARATOR}\n"


def render_context(ctx: AnalysisContext) -> str:
    parts = [f"Target Username: {ctx.subject_id}\n\n"]
    parts.extend(render_summary(s) for s in ctx.summaries)
    return "".join(parts)
