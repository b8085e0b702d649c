"""CLI entry point for gitguide."""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Annotated

import typer
import yaml
from rich import print as rprint
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.panel import Panel
from rich.syntax import Syntax
from rich.tree import Tree

from gitguide.config import GitGuideConfig, load_config
from gitguide.config.loader import DEFAULT_CONFIG_TEMPLATE
from gitguide.errors import GitGuideError
from gitguide.explainer import RepoExplainer
from gitguide.llm import Explanation, GeminiClient, RateLimiter
from gitguide.vcs import FileEntry, GitHubContentFetcher, RepoSnapshot, TreeNode, find_readme

app = typer.Typer(
    name="gitguide",
    help="Explain GitHub repositories with Gemini.",
)

config_app = typer.Typer(help="Manage gitguide configuration.")
app.add_typer(config_app, name="config")

_LOG_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}

# Global state
_config: GitGuideConfig | None = None

ApiKeyOption = Annotated[
    str | None,
    typer.Option("--api-key", help="Gemini API key (default: env var from config)"),
]


def _get_config() -> GitGuideConfig:
    if _config is None:
        return load_config()
    return _config


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("gitguide")
    logger.setLevel(_LOG_LEVELS[level])
    # Reset handlers so repeated invocations (tests) do not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.addHandler(RichHandler(show_path=False, markup=False))
    logger.propagate = False


@app.callback()
def main(
    config: Annotated[
        str | None, typer.Option("--config", "-c", help="Path to gitguide.yaml")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
) -> None:
    """Global options."""
    global _config
    try:
        _config = load_config(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    _configure_logging("debug" if verbose else _config.log_level)


def _resolve_api_key(cfg: GitGuideConfig, api_key: str | None) -> str:
    key = api_key or os.environ.get(cfg.llm.api_key_env, "")
    if not key:
        raise ValueError(
            f"Missing API key: pass --api-key or set environment variable "
            f"{cfg.llm.api_key_env!r}"
        )
    return key


def _build_tree(node: TreeNode, branch: Tree) -> None:
    for child in sorted(node.children, key=lambda c: (c.kind != "dir", c.name.lower())):
        if child.kind == "dir":
            _build_tree(child, branch.add(f"[bold blue]{child.name}/[/bold blue]"))
        else:
            size = f" [dim]({child.size} bytes)[/dim]" if child.size is not None else ""
            branch.add(f"{child.name}{size}")


def _display_explanation(title: str, explanation: Explanation) -> None:
    rprint(Panel(Markdown(explanation.content), title=title, border_style="blue"))


async def _find_entry(
    fetcher: GitHubContentFetcher, snapshot: RepoSnapshot, path: str
) -> FileEntry:
    """Locate ``path`` by listing its parent directory."""
    path = path.strip("/")
    parent = path.rsplit("/", 1)[0] if "/" in path else ""
    if parent:
        siblings = await fetcher.fetch_directory(snapshot.owner, snapshot.name, parent)
    else:
        siblings = list(snapshot.files)
    for entry in siblings:
        if entry.path == path:
            return entry
    raise ValueError(f"Path '{path}' not found in {snapshot.full_name}")


def _run(coro) -> object:
    """Run a coroutine, turning expected failures into a clean exit."""
    try:
        return asyncio.run(coro)
    except (GitGuideError, ValueError) as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)
    except Exception as e:
        rprint(f"[red]Unexpected error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def tree(
    url: str = typer.Argument(..., help="GitHub repository URL"),
    depth: Annotated[
        int | None, typer.Option("--depth", "-d", help="Maximum directory depth")
    ] = None,
) -> None:
    """Show the repository structure."""
    cfg = _get_config()

    async def _go() -> tuple[RepoSnapshot, TreeNode]:
        async with GitHubContentFetcher(cfg.github) as fetcher:
            snapshot = await fetcher.fetch_root_listing(url)
            structure = await fetcher.fetch_full_tree(
                snapshot.owner, snapshot.name, max_depth=depth
            )
            return snapshot, structure

    snapshot, structure = _run(_go())
    root = Tree(
        f"[bold]{snapshot.full_name}[/bold] [dim]({snapshot.default_branch})[/dim]"
    )
    _build_tree(structure, root)
    rprint(root)


@app.command()
def explain(
    url: str = typer.Argument(..., help="GitHub repository URL"),
    path: str = typer.Argument("", help="File or directory inside the repo (default: whole repo)"),
    api_key: ApiKeyOption = None,
) -> None:
    """Explain the repository, a directory, or a file."""
    cfg = _get_config()

    async def _go() -> tuple[str, Explanation]:
        key = _resolve_api_key(cfg, api_key)
        async with GitHubContentFetcher(cfg.github) as fetcher, GeminiClient(
            key, cfg.llm, RateLimiter(cfg.llm.min_call_interval)
        ) as llm:
            explainer = RepoExplainer(llm, cfg.truncation)
            snapshot = await fetcher.fetch_root_listing(url)

            if not path.strip("/"):
                structure = await fetcher.fetch_full_tree(snapshot.owner, snapshot.name)
                readme_entry = find_readme(snapshot.files)
                readme = None
                if readme_entry and readme_entry.download_url:
                    readme = await fetcher.fetch_file_text(readme_entry.download_url)
                return snapshot.full_name, await explainer.explain_repo(
                    snapshot.name, structure, readme
                )

            entry = await _find_entry(fetcher, snapshot, path)
            if entry.kind == "dir":
                children = await fetcher.fetch_directory(
                    snapshot.owner, snapshot.name, entry.path
                )
                return entry.path, await explainer.explain_directory(entry.path, children)

            if not entry.download_url:
                raise ValueError(f"'{entry.path}' has no downloadable content")
            content = await fetcher.fetch_file_text(entry.download_url)
            return entry.path, await explainer.explain_file(
                entry.path, content, snapshot.name
            )

    title, explanation = _run(_go())
    _display_explanation(title, explanation)


@app.command()
def ask(
    url: str = typer.Argument(..., help="GitHub repository URL"),
    path: str = typer.Argument(..., help="File inside the repo"),
    question: str = typer.Argument(..., help="Question about the file"),
    api_key: ApiKeyOption = None,
) -> None:
    """Ask a question about one file."""
    cfg = _get_config()

    async def _go() -> Explanation:
        key = _resolve_api_key(cfg, api_key)
        async with GitHubContentFetcher(cfg.github) as fetcher, GeminiClient(
            key, cfg.llm, RateLimiter(cfg.llm.min_call_interval)
        ) as llm:
            snapshot = await fetcher.fetch_root_listing(url)
            entry = await _find_entry(fetcher, snapshot, path)
            if entry.kind != "file" or not entry.download_url:
                raise ValueError(f"'{entry.path}' is not a downloadable file")
            content = await fetcher.fetch_file_text(entry.download_url)
            explainer = RepoExplainer(llm, cfg.truncation)
            return await explainer.answer_question(question, entry.path, content, snapshot.name)

    _display_explanation(question, _run(_go()))


@app.command()
def diagram(
    url: str = typer.Argument(..., help="GitHub repository URL"),
    depth: Annotated[
        int | None, typer.Option("--depth", "-d", help="Maximum directory depth")
    ] = None,
    api_key: ApiKeyOption = None,
) -> None:
    """Generate a Mermaid architecture diagram."""
    cfg = _get_config()

    async def _go() -> str:
        key = _resolve_api_key(cfg, api_key)
        async with GitHubContentFetcher(cfg.github) as fetcher, GeminiClient(
            key, cfg.llm, RateLimiter(cfg.llm.min_call_interval)
        ) as llm:
            snapshot = await fetcher.fetch_root_listing(url)
            structure = await fetcher.fetch_full_tree(
                snapshot.owner, snapshot.name, max_depth=depth
            )
            explainer = RepoExplainer(llm, cfg.truncation)
            return await explainer.generate_architecture_diagram(snapshot.name, structure)

    # Plain output so the diagram can be piped into a .mmd file.
    typer.echo(_run(_go()))


@config_app.command("show")
def config_show() -> None:
    """Show current resolved configuration."""
    cfg = _get_config()
    rprint(Syntax(yaml.dump(cfg.model_dump(), default_flow_style=False), "yaml"))


@config_app.command("init")
def config_init(
    force: bool = typer.Option(False, "--force", help="Overwrite existing config"),
) -> None:
    """Create default gitguide.yaml in current directory."""
    target = Path("gitguide.yaml")
    if target.exists() and not force:
        rprint("[yellow]gitguide.yaml already exists.[/yellow] Use --force to overwrite.")
        raise typer.Exit(1)
    target.write_text(DEFAULT_CONFIG_TEMPLATE)
    rprint(f"[green]Created[/green] {target}")
