import asyncio
from datetime import datetime, timezone

import httpx
import respx
from conftest import NOW, InFlightTracker, SleepRecorder, TrackingFetcher, mock_github

from fomo_roaster import context, github
from fomo_roaster.models import AnalysisContext, RepositoryRef, RepositorySummary


def _ref(name: str, day: int = 1) -> RepositoryRef:
    return RepositoryRef("octocat", name, None, datetime(2024, 1, day, tzinfo=timezone.utc))


def _build(repos: list[RepositoryRef], concurrency: int = 1) -> AnalysisContext:
    async def _inner():
        async with httpx.AsyncClient() as client:
            fetcher = github.RateLimitedFetcher(client, None, SleepRecorder(), lambda: NOW)
            return await context.build_context(fetcher, "octocat", repos, concurrency)

    return asyncio.run(_inner())


class TestBuildContext:
    @respx.mock
    def test_keeps_first_five_languages_in_order(self):
        languages = {"Go": 600, "Rust": 500, "C": 400, "Zig": 300, "Nim": 200, "Odin": 100, "V": 50}
        mock_github("octocat", [{"name": "polyglot", "languages": languages, "contents": []}])
        ctx = _build([_ref("polyglot")])
        assert ctx.summaries[0].languages == ("Go", "Rust", "C", "Zig", "Nim")

    @respx.mock
    def test_excludes_directories_and_caps_files(self):
        contents = [{"name": "src", "type": "dir"}, {"name": "docs", "type": "dir"}]
        contents += [{"name": f"file{i}.txt", "type": "file"} for i in range(20)]
        mock_github("octocat", [{"name": "big", "languages": {}, "contents": contents}])
        files = _build([_ref("big")]).summaries[0].top_level_files
        assert len(files) == 15
        assert "src" not in files
        assert "docs" not in files
        assert files[0] == "file0.txt"

    @respx.mock
    def test_missing_data_is_empty(self):
        # no languages or contents keys: both endpoints answer 404
        mock_github("octocat", [{"name": "empty"}])
        summary = _build([_ref("empty")]).summaries[0]
        assert summary.languages == ()
        assert summary.top_level_files == ()

    @respx.mock
    def test_concurrent_build_preserves_order(self, sample_repos):
        mock_github("octocat", sample_repos)
        refs = [_ref("agent-lab", 3), _ref("dotfiles", 2), _ref("legacy-shop", 1)]
        ctx = _build(refs, concurrency=5)
        assert [s.name for s in ctx.summaries] == ["agent-lab", "dotfiles", "legacy-shop"]
        assert ctx.subject_id == "octocat"

    def test_concurrent_build_caps_fetches_in_flight(self):
        tracker = InFlightTracker()
        fetcher = TrackingFetcher(tracker)
        refs = [_ref(f"repo-{i}", i + 1) for i in range(8)]
        ctx = asyncio.run(context.build_context(fetcher, "octocat", refs, concurrency=5))
        assert len(ctx.summaries) == 8
        assert len(fetcher.urls) == 16
        assert tracker.peak == 5

    def test_sequential_build_fetches_one_at_a_time(self):
        tracker = InFlightTracker()
        refs = [_ref(f"repo-{i}", i + 1) for i in range(3)]
        asyncio.run(context.build_context(TrackingFetcher(tracker), "octocat", refs))
        assert tracker.peak == 1


class TestRenderContext:
    def _summary(self, name, **kwargs):
        defaults = dict(
            description=None,
            languages=("Python",),
            top_level_files=("pyproject.toml",),
            updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        defaults.update(kwargs)
        return RepositorySummary(name=name, **defaults)

    def test_renders_fields(self):
        ctx = AnalysisContext(
            "octocat",
            (self._summary("lab", description="AI things", languages=("Python", "Rust"),
                           top_level_files=("pyproject.toml", "README.md")),),
        )
        text = context.render_context(ctx)
        assert text.startswith("Target Username: octocat\n\n")
        assert "Repository: lab\n" in text
        assert "Description: AI things\n" in text
        assert "Languages: Python, Rust\n" in text
        assert "Files: pyproject.toml, README.md\n" in text
        assert text.endswith("\n---\n")

    def test_missing_description_placeholder(self):
        text = context.render_summary(self._summary("lab"))
        assert "Description: None" in text

    def test_frameworks_only_when_detected(self):
        assert "Frameworks:" not in context.render_summary(self._summary("lab"))
        text = context.render_summary(self._summary("lab", frameworks=("FastAPI", "Pydantic")))
        assert "Frameworks: FastAPI, Pydantic" in text

    def test_preserves_summary_order(self):
        ctx = AnalysisContext("octocat", tuple(self._summary(n) for n in ("c", "a", "b")))
        text = context.render_context(ctx)
        assert text.index("Repository: c") < text.index("Repository: a") < text.index("Repository: b")
