"""gitguide - AI explanations for GitHub repositories."""

from gitguide.config import GitGuideConfig, load_config
from gitguide.explainer import RepoExplainer
from gitguide.llm import Explanation, GeminiClient, RateLimiter
from gitguide.vcs import GitHubContentFetcher, RepoSnapshot, TreeNode

__version__ = "0.1.0"

__all__ = [
    "Explanation",
    "GeminiClient",
    "GitGuideConfig",
    "GitHubContentFetcher",
    "RateLimiter",
    "RepoExplainer",
    "RepoSnapshot",
    "TreeNode",
    "load_config",
]
