"""YAML config loading with env var expansion."""

import os
import re
from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import GitGuideConfig

CONFIG_ENV_VAR = "GITGUIDE_CONFIG"


def load_config(cli_path: str | None = None) -> GitGuideConfig:
    """Load config with resolution order:
    CLI > $GITGUIDE_CONFIG > project-local > user-global > defaults.

    An explicitly requested file (CLI or env) must exist.
    """
    explicit = cli_path or os.environ.get(CONFIG_ENV_VAR)
    if explicit and not Path(explicit).exists():
        raise ValueError(f"Config file not found: {explicit}")

    config_paths = [
        Path(explicit) if explicit else None,
        Path("./gitguide.yaml"),
        Path.home() / ".gitguide" / "config.yaml",
    ]

    for path in config_paths:
        if path and path.exists():
            try:
                with open(path) as f:
                    raw = yaml.safe_load(f)
                if raw is None:
                    continue
                if not isinstance(raw, dict):
                    raise ValueError(f"Invalid config in {path}: expected a mapping")
                raw = _expand_env_vars(raw)
                return GitGuideConfig(**raw)
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in {path}: {e}") from e
            except ValidationError as e:
                raise ValueError(f"Invalid config in {path}: {e}") from e

    return GitGuideConfig()


def _expand_env_vars(obj: object) -> object:
    """Recursively expand ${VAR} references in strings."""
    if isinstance(obj, str):
        return re.sub(r"\$\{(\w+)\}", lambda m: os.environ.get(m.group(1), ""), obj)
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


# Default YAML template for `gitguide config init`
DEFAULT_CONFIG_TEMPLATE = """\
# gitguide.yaml

# Gemini generateContent API
llm:
  models: ["gemini-2.5-flash"]   # tried in order until one succeeds
  api_key_env: "GEMINI_API_KEY"
  max_retries: 2                 # attempts per model
  backoff_base: 1.0              # seconds; retry waits 2^attempt * base
  min_call_interval: 1.0         # seconds between two generation calls
  timeout: 60
  temperature: 0.7
  max_output_tokens: 2048
  diagram:
    model: "gemini-2.0-flash"
    max_attempts: 3
    backoff_base: 2.0

# GitHub contents API
github:
  token_env: "GITHUB_TOKEN"      # optional; anonymous access works for public repos
  default_branch: "main"         # used when repo metadata cannot be fetched
  max_depth: 3                   # full-tree recursion depth
  batch_size: 3                  # directory listings fetched concurrently
  recursive_delay: 0.15          # seconds before each nested listing
  rate_limit_retry_delay: 3.0

# Character budgets for content sent to the model
truncation:
  file_explanation_chars: 15000
  question_chars: 12000
  function_excerpt_chars: 500

# Logging
log_level: "info"                # debug | info | warn | error
"""
