"""Prompt building, truncation, diagram compilation and the explainer facade."""

from gitguide.explainer.diagram import compile_diagram, parse_and_compile, parse_diagram_json
from gitguide.explainer.explainer import RepoExplainer
from gitguide.explainer.truncation import TruncatedText, truncate_middle

__all__ = [
    "RepoExplainer",
    "TruncatedText",
    "compile_diagram",
    "parse_and_compile",
    "parse_diagram_json",
    "truncate_middle",
]
