import asyncio
import base64
import logging
import time
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from urllib.parse import quote, urlparse

import httpx

from fomo_roaster.models import RepositoryRef

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
PER_PAGE = 30
MIN_COLLECTED = 10
RATE_LIMIT_PADDING = 1.0  # seconds waited past the advertised reset

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class GitHubError(Exception):
    code = "upstream_failure"

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InvalidInput(GitHubError):
    code = "invalid_input"


class NoRepositoriesFound(GitHubError):
    code = "no_repositories"


def parse_subject_id(value: str | None) -> str:
    """Return the username from a bare name or a github.com profile URL."""
    value = (value or "").strip().rstrip("/")
    if not value:
        raise InvalidInput("A GitHub username is required")

    if "://" in value or value.startswith(("github.com/", "www.github.com/")):
        parsed = urlparse(value if "://" in value else f"https://{value}")
        if parsed.hostname not in ("github.com", "www.github.com"):
            raise InvalidInput("Not a GitHub URL")
        parts = [p for p in parsed.path.split("/") if p]
        if not parts:
            raise InvalidInput("GitHub URL does not name a user")
        value = parts[0]

    # Anything else is passed through; GitHub decides whether the user exists
    value = value.lstrip("@")
    if not value:
        raise InvalidInput("A GitHub username is required")
    return value


def _make_headers(token: str | None) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github.v3+json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    return headers


def rate_limit_delay(headers: httpx.Headers, now: float) -> float:
    """Seconds to wait before the rate-limit window resets."""
    try:
        reset_at = int(headers.get("x-ratelimit-reset", ""))
    except ValueError:
        reset_at = int(now)
    return max(0.0, reset_at - now) + RATE_LIMIT_PADDING


def _is_rate_limited(resp: httpx.Response) -> bool:
    return resp.status_code in (403, 429) and resp.headers.get("x-ratelimit-remaining") == "0"


def _handle_error(resp: httpx.Response, url: str) -> None:
    if resp.status_code == 403:
        raise GitHubError(f"GitHub denied access to {url}")
    if resp.status_code >= 400:
        raise GitHubError(f"GitHub API error ({resp.status_code}) for {url}: {resp.text[:200]}")


class RateLimitedFetcher:
    """GET JSON from the GitHub API, waiting out rate-limit windows.

    A 404 is returned as an empty list. The wait after a rate-limited
    response has no retry ceiling because the reset time is finite.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ):
        self._client = client
        self._headers = _make_headers(token)
        self._sleep = sleep
        self._clock = clock

    async def fetch(self, url: str, **params: Any) -> Any:
        while True:
            try:
                resp = await self._client.get(url, headers=self._headers, params=params or None)
            except httpx.HTTPError as exc:
                raise GitHubError(f"Failed to connect to GitHub: {exc}") from exc

            if _is_rate_limited(resp):
                delay = rate_limit_delay(resp.headers, self._clock())
                logger.warning(f"GitHub rate limit hit for {url}, retrying in {delay:.0f}s")
                await self._sleep(delay)
                continue

            if resp.status_code == 404:
                return []

            _handle_error(resp, url)
            return resp.json()


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return _EPOCH
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return _EPOCH


def _to_ref(subject_id: str, entry: dict) -> RepositoryRef:
    owner = (entry.get("owner") or {}).get("login") or subject_id
    return RepositoryRef(
        owner=owner,
        name=entry["name"],
        description=entry.get("description"),
        updated_at=_parse_timestamp(entry.get("updated_at")),
    )


async def list_top_repositories(
    fetcher: RateLimitedFetcher,
    subject_id: str,
    limit: int,
    per_page: int = PER_PAGE,
    min_collected: int = MIN_COLLECTED,
) -> list[RepositoryRef]:
    """Most recently updated repositories of ``subject_id``, newest first."""
    url = f"{GITHUB_API_URL}/users/{quote(subject_id, safe='')}/repos"
    wanted = max(min_collected, limit)
    collected: list[dict] = []
    page = 1
    while len(collected) < wanted:
        batch = await fetcher.fetch(url, per_page=per_page, page=page)
        if not isinstance(batch, list):
            break
        collected.extend(e for e in batch if isinstance(e, dict) and e.get("name"))
        if len(batch) < per_page:
            break
        page += 1

    if not collected:
        raise NoRepositoriesFound("No public repositories found")

    refs = [_to_ref(subject_id, e) for e in collected]
    # sorted() is stable, so equal timestamps keep listing order
    refs = sorted(refs, key=lambda r: r.updated_at, reverse=True)
    logger.info(f"Listed {len(collected)} repositories for {subject_id}, keeping {min(limit, len(refs))}")
    return refs[:limit]


async def fetch_languages(fetcher: RateLimitedFetcher, repo: RepositoryRef) -> list[str]:
    data = await fetcher.fetch(f"{GITHUB_API_URL}/repos/{repo.owner}/{repo.name}/languages")
    if not isinstance(data, dict):
        return []
    return list(data.keys())


async def fetch_top_level_files(fetcher: RateLimitedFetcher, repo: RepositoryRef) -> list[str]:
    data = await fetcher.fetch(f"{GITHUB_API_URL}/repos/{repo.owner}/{repo.name}/contents")
    if not isinstance(data, list):
        return []
    return [e["name"] for e in data if isinstance(e, dict) and e.get("type") == "file" and e.get("name")]


async def fetch_file_content(fetcher: RateLimitedFetcher, repo: RepositoryRef, path: str) -> str:
    """Decoded text of one file, or "" when it is missing or not a file."""
    data = await fetcher.fetch(
        f"{GITHUB_API_URL}/repos/{repo.owner}/{repo.name}/contents/{quote(path)}"
    )
    if not isinstance(data, dict) or data.get("encoding") != "base64" or "content" not in data:
        return ""

    try:
        return base64.b64decode(data["content"]).decode("utf-8", errors="replace")
    except ValueError as exc:
        raise GitHubError(f"Failed to decode '{path}': {exc}") from exc
