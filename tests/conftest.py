import asyncio
import base64
import json

import httpx
import pytest
import respx

from fomo_roaster import config, core, llm
from fomo_roaster.cache import ResultCache
from fomo_roaster.quota import QuotaGovernor
from fomo_roaster.store import MemoryStore, StoreError

API = "https://api.github.com"
NOW = 1_700_000_000.0

SAMPLE_REPOS = [
    {
        "name": "legacy-shop",
        "description": "jQuery storefront",
        "updated_at": "2021-03-01T10:00:00Z",
        "languages": {"JavaScript": 9000, "PHP": 4000, "CSS": 800},
        "contents": [
            {"name": "index.php", "type": "file"},
            {"name": "composer.json", "type": "file"},
            {"name": "vendor", "type": "dir"},
        ],
    },
    {
        "name": "agent-lab",
        "description": None,
        "updated_at": "2025-09-12T08:30:00Z",
        "languages": {"Python": 12000, "Rust": 3000},
        "contents": [
            {"name": "pyproject.toml", "type": "file"},
            {"name": "src", "type": "dir"},
        ],
    },
    {
        "name": "dotfiles",
        "description": "My configs",
        "updated_at": "2023-06-20T12:00:00Z",
        "languages": {"Shell": 500},
        "contents": [{"name": ".zshrc", "type": "file"}],
    },
]

STRUCTURED_REPLY = json.dumps(
    {
        "totalFomoScore": 42,
        "roast": "Your stack has bell bottoms.",
        "skillsToLearn": "Rust, WebAssembly and agents.",
        "summary": "Half dinosaur, half hopeful.",
    }
)


class ScriptedCompletion:
    """Stands in for the model. Replays ``replies`` in order, repeating the last."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts: list[str] = []

    async def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, Exception):
            raise reply
        return reply

    @property
    def calls(self) -> int:
        return len(self.prompts)


class SleepRecorder:
    def __init__(self):
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def repo_entry(repo: dict, owner: str = "octocat") -> dict:
    return {
        "name": repo["name"],
        "description": repo.get("description"),
        "updated_at": repo.get("updated_at"),
        "owner": {"login": owner},
    }


def mock_github(username: str, repos: list[dict]) -> respx.Route:
    """Register GitHub routes for ``username`` on the active respx router."""

    def _list_page(request: httpx.Request) -> httpx.Response:
        per_page = int(request.url.params.get("per_page", 30))
        page = int(request.url.params.get("page", 1))
        batch = repos[(page - 1) * per_page:page * per_page]
        return httpx.Response(200, json=[repo_entry(r, username) for r in batch])

    listing = respx.get(f"{API}/users/{username}/repos").mock(side_effect=_list_page)
    for repo in repos:
        base = f"{API}/repos/{username}/{repo['name']}"
        if "languages" in repo:
            respx.get(f"{base}/languages").mock(return_value=httpx.Response(200, json=repo["languages"]))
        else:
            respx.get(f"{base}/languages").mock(return_value=httpx.Response(404, json={"message": "Not Found"}))
        if "contents" in repo:
            respx.get(f"{base}/contents").mock(return_value=httpx.Response(200, json=repo["contents"]))
        else:
            respx.get(f"{base}/contents").mock(return_value=httpx.Response(404, json={"message": "Not Found"}))
        for path, text in repo.get("files", {}).items():
            encoded = base64.b64encode(text.encode()).decode()
            respx.get(f"{base}/contents/{path}").mock(
                return_value=httpx.Response(200, json={"content": encoded, "encoding": "base64"})
            )
    return listing


def make_analyzer(
    completion: ScriptedCompletion,
    store: MemoryStore | None = None,
    quota_limit: int = 100,
    sleep: SleepRecorder | None = None,
) -> core.Analyzer:
    cfg = config.Config(github_token="test-token")
    store = store or MemoryStore()
    sleep = sleep or SleepRecorder()
    governor = QuotaGovernor(store, ceiling=quota_limit, key="test-quota")
    generator = llm.GenerationClient(completion, sleep=sleep, governor=governor)
    cache = ResultCache(store, prefix="test-result")
    return core.Analyzer(generator, cache, cfg, sleep=sleep, clock=lambda: NOW)


@pytest.fixture
def sample_repos():
    return [dict(r) for r in SAMPLE_REPOS]


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenStore:
    async def get(self, key):
        raise StoreError("connection refused")

    async def set(self, key, value, ttl):
        raise StoreError("connection refused")

    async def incr(self, key, ttl):
        raise StoreError("connection refused")


class InFlightTracker:
    """Counts overlapping awaits; ``peak`` is the most seen at once."""

    def __init__(self, delay: float = 0.01):
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def hold(self) -> None:
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1


class TrackingFetcher:
    """Answers every GitHub fetch with an empty payload while tracking overlap."""

    def __init__(self, tracker: InFlightTracker):
        self.tracker = tracker
        self.urls: list[str] = []

    async def fetch(self, url: str, **params):
        self.urls.append(url)
        await self.tracker.hold()
        return {} if url.endswith("/languages") else []
