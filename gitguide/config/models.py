from pydantic import BaseModel, Field
from typing import Literal


class DiagramSettings(BaseModel):
    model: str = "gemini-2.0-flash"
    max_attempts: int = Field(default=3, gt=0)
    backoff_base: float = Field(default=2.0, ge=0)
    temperature: float = 0.2
    max_output_tokens: int = Field(default=2000, gt=0)
    top_k: int = Field(default=40, gt=0)
    top_p: float = Field(default=0.8, gt=0, le=1)


class LLMSettings(BaseModel):
    endpoint: str = "https://generativelanguage.googleapis.com/v1beta/models"
    models: list[str] = Field(default_factory=lambda: ["gemini-2.5-flash"], min_length=1)
    api_key_env: str = "GEMINI_API_KEY"
    max_retries: int = Field(default=2, gt=0)
    backoff_base: float = Field(default=1.0, ge=0)
    min_call_interval: float = Field(default=1.0, ge=0)
    timeout: int = Field(default=60, gt=0)
    temperature: float = 0.7
    max_output_tokens: int = Field(default=2048, gt=0)
    top_k: int = Field(default=40, gt=0)
    top_p: float = Field(default=0.95, gt=0, le=1)
    diagram: DiagramSettings = Field(default_factory=DiagramSettings)


class GitHubSettings(BaseModel):
    api_base: str = "https://api.github.com"
    web_host: str = "github.com"
    token_env: str = "GITHUB_TOKEN"
    default_branch: str = "main"
    max_depth: int = Field(default=3, ge=0)
    batch_size: int = Field(default=3, gt=0)
    recursive_delay: float = Field(default=0.15, ge=0)
    rate_limit_retry_delay: float = Field(default=3.0, ge=0)
    timeout: int = Field(default=30, gt=0)


class TruncationSettings(BaseModel):
    file_explanation_chars: int = Field(default=15000, gt=0)
    question_chars: int = Field(default=12000, gt=0)
    function_excerpt_chars: int = Field(default=500, gt=0)


class GitGuideConfig(BaseModel):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    github: GitHubSettings = Field(default_factory=GitHubSettings)
    truncation: TruncationSettings = Field(default_factory=TruncationSettings)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
