"""Explainer orchestrator: turns repository data into model requests."""

from __future__ import annotations

import logging

from gitguide.config.models import TruncationSettings
from gitguide.explainer import prompts
from gitguide.explainer.diagram import parse_and_compile
from gitguide.explainer.truncation import truncate_middle
from gitguide.llm.gemini import GeminiClient
from gitguide.llm.models import Explanation, FunctionSource
from gitguide.vcs.models import FileEntry, TreeNode

logger = logging.getLogger(__name__)


class RepoExplainer:
    """Builds prompts, applies truncation budgets and calls the Gemini client.

    Pipeline:
        (path, content, question) → prompts/truncation → GeminiClient → Explanation

    Explanation methods always return something renderable; only
    ``generate_architecture_diagram`` raises.
    """

    def __init__(
        self,
        llm: GeminiClient,
        truncation: TruncationSettings | None = None,
    ) -> None:
        self.llm = llm
        self.truncation = truncation or TruncationSettings()

    async def explain_repo(
        self, repo_name: str, structure: TreeNode, readme: str | None = None
    ) -> Explanation:
        prompt = prompts.build_repo_prompt(repo_name, structure, readme)
        return await self.llm.generate(prompt)

    async def explain_directory(self, dir_path: str, entries: list[FileEntry]) -> Explanation:
        prompt = prompts.build_directory_prompt(dir_path, entries)
        return await self.llm.generate(prompt)

    async def explain_file(self, file_path: str, content: str, repo_name: str) -> Explanation:
        window = truncate_middle(content, self.truncation.file_explanation_chars)
        if window.truncated:
            logger.info("Truncated %s: %d characters omitted", file_path, window.omitted)
        prompt = prompts.build_file_prompt(
            file_path, repo_name, window, line_count=len(content.split("\n"))
        )
        return await self.llm.generate(prompt)

    async def answer_question(
        self, question: str, file_path: str, content: str, repo_name: str
    ) -> Explanation:
        window = truncate_middle(content, self.truncation.question_chars)
        prompt = prompts.build_question_prompt(question, file_path, repo_name, window)
        return await self.llm.generate(prompt)

    async def explain_function(self, code: str) -> str:
        result = await self.llm.generate(prompts.build_function_prompt(code))
        return result.content

    async def explain_functions(self, functions: list[FunctionSource]) -> dict[str, str]:
        """Explain many functions with one request.

        If the whole call fails, every function maps to NO_EXPLANATION since
        the fallback message carries no ``FUNCTION_<n>:`` lines.
        """
        if not functions:
            return {}
        prompt = prompts.build_function_batch_prompt(
            functions, self.truncation.function_excerpt_chars
        )
        result = await self.llm.generate(prompt)
        return prompts.parse_function_batch_response(result.content, functions)

    async def generate_architecture_diagram(self, repo_name: str, structure: TreeNode) -> str:
        """Return Mermaid text; raises RateLimitedError or DiagramGenerationError."""
        prompt = prompts.build_diagram_prompt(repo_name, structure)
        logger.debug("Architecture diagram prompt length: %d", len(prompt))
        return await self.llm.generate_structured(prompt, parse_and_compile)
