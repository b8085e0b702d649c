from .loader import load_config
from .models import (
    DiagramSettings,
    GitGuideConfig,
    GitHubSettings,
    LLMSettings,
    TruncationSettings,
)

__all__ = [
    "DiagramSettings",
    "GitGuideConfig",
    "GitHubSettings",
    "LLMSettings",
    "TruncationSettings",
    "load_config",
]
