from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    gemini_api_key: str = ""
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta/openai/"
    model_name: str = "gemini-2.5-flash"
    temperature: float = 0.9
    max_generation_attempts: int = 3
    base_backoff_seconds: float = 1.0
    backoff_jitter: float = 0.0  # fraction of the delay added at random


class PipelineConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    per_page: int = 30
    min_collected: int = 10  # listing stops paging once this many repos are in hand
    max_languages: int = 5
    max_files: int = 15
    roast_repo_limit: int = 3
    analysis_repo_limit: int = 10
    analysis_concurrency: int = 5
    roast_template: str = "roast"
    analysis_template: str = "structured"
    max_parse_attempts: int = 3
    max_manifest_chars: int = 8_000


class QuotaConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    daily_generation_limit: int = 500
    quota_key: str = "fomo-roaster:generation-quota"
    quota_window_seconds: int = 86_400


class CacheConfig(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    cache_ttl_seconds: int = 86_400
    cache_prefix: str = "fomo-roaster:result"


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")
    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    quota: QuotaConfig = Field(default_factory=QuotaConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    github_token: str | None = None


@lru_cache
def get_config() -> Config:
    return Config()


class PipelineProfile(BaseModel):
    """A named configuration of the analysis pipeline."""

    name: str
    repo_limit: int
    concurrency: int = 1
    template: str
    detect_frameworks: bool = False


def roast_profile(cfg: Config) -> PipelineProfile:
    return PipelineProfile(
        name="roast",
        repo_limit=cfg.pipeline.roast_repo_limit,
        concurrency=1,
        template=cfg.pipeline.roast_template,
    )


def analysis_profile(cfg: Config) -> PipelineProfile:
    return PipelineProfile(
        name="analysis",
        repo_limit=cfg.pipeline.analysis_repo_limit,
        concurrency=cfg.pipeline.analysis_concurrency,
        template=cfg.pipeline.analysis_template,
        detect_frameworks=True,
    )
