"""Prompt templates for every kind of explanation request.

Everything here is pure string building; nothing touches the network.
"""

from __future__ import annotations

from enum import Enum

from gitguide.explainer.truncation import TruncatedText
from gitguide.llm.models import FunctionSource
from gitguide.vcs.models import FileEntry, TreeNode

NO_EXPLANATION = "No explanation available"

FUNCTION_EXCERPT_CHARS = 500

TREE_MAX_DEPTH = 3
TREE_MAX_CHILDREN = 20

# Matched against entry names exactly or as a prefix.
TREE_IGNORED_NAMES: tuple[str, ...] = (
    "node_modules",
    ".git",
    ".vscode",
    ".idea",
    "dist",
    "build",
    "coverage",
    "package-lock.json",
    "yarn.lock",
    ".DS_Store",
)


class ContentKind(str, Enum):
    CODE = "code"
    JSON = "json"
    MARKDOWN = "markdown"
    CONFIG = "config"
    GENERIC = "generic"


_EXTENSION_KINDS: dict[str, ContentKind] = {
    **{ext: ContentKind.CODE for ext in ("py", "pyw", "js", "jsx", "ts", "tsx")},
    "json": ContentKind.JSON,
    "md": ContentKind.MARKDOWN,
    **{ext: ContentKind.CONFIG for ext in ("toml", "yaml", "yml", "xml")},
}

REPO_PROMPT_TEMPLATE = """\
You are a senior developer explaining a GitHub repository to a teammate. \
Provide a high-level explanation of the repository "{repo_name}" and its structure. \
Based on the repository structure and README content below, explain:

1. What this project is and what problem it solves
2. The high-level architecture and organization
3. Key directories and their purposes
4. Any important configuration files
5. Main entry points
6. Technology stack used

Be conversational like a coworker. Explain the 'why' not just the 'what'. \
Point out interesting patterns. Structure your response to be clear and informative.

REPOSITORY STRUCTURE:
{structure}

README CONTENT:
{readme}"""

DIRECTORY_PROMPT_TEMPLATE = """\
Explain the "{dir_path}" directory:

Contents:
{listing}

Provide:
1. Purpose of this directory (1-2 sentences)
2. Key items and their roles
3. How it fits in the project

Be concise."""

FILE_PROMPT_TEMPLATE = """\
You are analyzing the file "{file_path}" from the {repo_name} repository.

FILE STATISTICS:
- Lines: {line_count}
- Characters: {char_count}
{status_line}

FILE CONTENT:
```
{content}
```

IMPORTANT INSTRUCTIONS:
- You have {coverage} file content above
- DO NOT mention "incomplete context", "limited context", or "need more information"
- Analyze and explain based on what IS provided
- Be thorough and detailed in your explanation
- Focus on what the code DOES and WHY it matters

"""

_SECTION_TEMPLATES: dict[ContentKind, str] = {
    ContentKind.CODE: """\
Provide a comprehensive explanation covering:

1. **Purpose & Overview**: What this file does and its role in the project (2-3 sentences)
2. **Key Components**: Main functions, classes, or components with their purposes
3. **Implementation Details**: Important patterns, algorithms, or logic flows
4. **Dependencies**: Key imports and how they're used
5. **Notable Features**: Any interesting patterns, optimizations, or important details

Be thorough and detailed. Explain the logic and reasoning behind the code.""",
    ContentKind.JSON: """\
Provide a detailed explanation covering:

1. **Configuration Purpose**: What this configuration controls (2-3 sentences)
2. **Key Settings**: Important configuration values and their meanings
3. **Impact**: How these settings affect the project
4. **Notable Entries**: Any particularly important or interesting configurations

Be thorough and explain the significance of the configuration.""",
    ContentKind.MARKDOWN: """\
Provide a comprehensive summary covering:

1. **Document Purpose**: What this document covers (2-3 sentences)
2. **Main Sections**: Overview of the major sections and topics
3. **Key Information**: Important details, instructions, or guidelines
4. **Highlights**: Notable points that developers should know

Be thorough and informative.""",
    ContentKind.CONFIG: """\
Provide a detailed explanation covering:

1. **Configuration Purpose**: What this configuration file controls (2-3 sentences)
2. **Key Settings**: Important configuration values and their effects
3. **Structure**: How the configuration is organized
4. **Impact**: How these settings affect the project

Be thorough and explain the configuration's significance.""",
    ContentKind.GENERIC: """\
Provide a comprehensive explanation covering:

1. **Purpose**: What this file does and why it exists (2-3 sentences)
2. **Content Analysis**: Key elements and their purposes
3. **Structure**: How the file is organized
4. **Important Details**: Notable aspects developers should understand

Be thorough and detailed in your explanation.""",
}

QUESTION_PROMPT_TEMPLATE = """\
You are answering a question about the file "{file_path}" from the {repo_name} repository.

USER QUESTION: "{question}"

{coverage} FILE CONTENT:
```
{content}
```

INSTRUCTIONS:
- Answer the question directly and thoroughly based on the code provided
- DO NOT mention "incomplete context" or "need more information" - work with what's provided
- Reference specific code sections when relevant
- Be detailed and helpful
- If the answer requires context from the visible code, explain it fully

Provide a clear, comprehensive answer:"""

FUNCTION_PROMPT_TEMPLATE = """\
Explain the purpose of this function in 1-2 sentences. Be specific about what it does:

```
{code}
```"""

FUNCTION_BATCH_PROMPT_TEMPLATE = """\
Explain each function below in 1-2 sentences. Be specific about what each does.

{functions}

Respond in this exact format:
FUNCTION_1: [explanation]
FUNCTION_2: [explanation]
..."""

DIAGRAM_PROMPT_TEMPLATE = """\
You are a Senior Software Architect. Analyze the codebase structure and generate \
a tailored Technical Architecture Diagram in JSON format.

CONTEXT:
- Repository: {repo_name}
- Files: ~{file_count} | Directories: ~{dir_count}

FILE STRUCTURE (TreeMap):
```
{tree}
```

INSTRUCTIONS:
1. **Analyze** the structure to identify architectural patterns (MVC, Microservices, Monolith, Clean Arch).
2. **Infer** logical components from naming conventions (e.g., 'auth-controller' -> 'API/Auth', 'users-db' -> 'Data/Users').
3. **Group** components into meaningful layers/modules (e.g., 'Frontend', 'Backend API', 'Database Layer').
4. **Define** relationships to show data flow (e.g., UI -> API -> Service -> DB).

OUTPUT FORMAT:
Return ONLY a valid JSON object matching this TypeScript interface:

```typescript
interface DiagramData {{
  // Logical groupings (subgraphs)
  modules: {{
    id: string;       // unique alphanumeric id, e.g., "backend_api"
    label: string;    // display name, e.g., "Backend API"
    components: {{
      id: string;     // unique alphanumeric id, e.g., "auth_controller"
      label: string;  // display name, e.g., "Auth Controller"
    }}[];
  }}[];
  // Connections between components
  relationships: {{
    from: string;     // component id
    to: string;       // component id
    type: 'solid' | 'dotted'; // solid = flow/call, dotted = dependency/reference
    label?: string;   // optional edge label
  }}[];
}}
```

CONSTRAINTS:
- IDs must be alphanumeric using underscores (no spaces/dashes).
- Keep it high-level: 15-25 nodes maximum.
- Do NOT output Mermaid code directly. Output strictly JSON.
- Ensure 'from' and 'to' in relationships match defined component IDs.

GENERATE JSON NOW:"""


def detect_content_kind(path: str) -> ContentKind:
    """Pick the section template from the file extension."""
    name = path.rsplit("/", 1)[-1]
    extension = name.rsplit(".", 1)[-1].lower() if "." in name else ""
    return _EXTENSION_KINDS.get(extension, ContentKind.GENERIC)


def build_repo_prompt(repo_name: str, structure: TreeNode, readme: str | None) -> str:
    return REPO_PROMPT_TEMPLATE.format(
        repo_name=repo_name,
        structure=structure.model_dump_json(indent=2, exclude_none=True),
        readme=readme or "No README found",
    )


def build_directory_prompt(dir_path: str, entries: list[FileEntry]) -> str:
    listing = "\n".join(f"- {entry.name} ({entry.kind})" for entry in entries)
    return DIRECTORY_PROMPT_TEMPLATE.format(dir_path=dir_path, listing=listing)


def build_file_prompt(
    file_path: str,
    repo_name: str,
    window: TruncatedText,
    line_count: int,
) -> str:
    """Full-file explanation prompt.

    ``window`` is the (possibly truncated) content; the statistics describe
    the original file.
    """
    if window.truncated:
        status_line = (
            "- Note: Middle section truncated, but you have beginning and end "
            "for full understanding\n"
        )
        coverage = "substantial portions of the"
    else:
        status_line = "- Status: Complete file content provided\n"
        coverage = "the complete"

    prompt = FILE_PROMPT_TEMPLATE.format(
        file_path=file_path,
        repo_name=repo_name,
        line_count=line_count,
        char_count=window.original_length,
        status_line=status_line,
        content=window.text,
        coverage=coverage,
    )
    return prompt + _SECTION_TEMPLATES[detect_content_kind(file_path)]


def build_question_prompt(
    question: str,
    file_path: str,
    repo_name: str,
    window: TruncatedText,
) -> str:
    return QUESTION_PROMPT_TEMPLATE.format(
        file_path=file_path,
        repo_name=repo_name,
        question=question,
        coverage="SUBSTANTIAL" if window.truncated else "COMPLETE",
        content=window.text,
    )


def build_function_prompt(code: str) -> str:
    return FUNCTION_PROMPT_TEMPLATE.format(code=code)


def build_function_batch_prompt(
    functions: list[FunctionSource],
    excerpt_chars: int = FUNCTION_EXCERPT_CHARS,
) -> str:
    """One prompt covering many functions, each cut to ``excerpt_chars``."""
    blocks = [
        f"FUNCTION_{index}: {func.name}\n```\n{func.code[:excerpt_chars]}\n```"
        for index, func in enumerate(functions, start=1)
    ]
    return FUNCTION_BATCH_PROMPT_TEMPLATE.format(functions="\n\n".join(blocks))


def parse_function_batch_response(
    text: str, functions: list[FunctionSource]
) -> dict[str, str]:
    """Map each function name to its ``FUNCTION_<n>:`` line.

    Best effort: a missing or renumbered line yields NO_EXPLANATION for that
    function instead of an error.
    """
    lines = [line.strip() for line in text.splitlines()]
    explanations: dict[str, str] = {}
    for index, func in enumerate(functions, start=1):
        prefix = f"FUNCTION_{index}:"
        match = next((line for line in lines if line.startswith(prefix)), None)
        if match is None:
            explanations[func.name] = NO_EXPLANATION
        else:
            explanations[func.name] = match.split(":", 1)[1].strip()
    return explanations


def _is_ignored(name: str) -> bool:
    return any(name == pattern or name.startswith(pattern) for pattern in TREE_IGNORED_NAMES)


def render_tree_text(
    node: TreeNode,
    max_depth: int = TREE_MAX_DEPTH,
    max_children: int = TREE_MAX_CHILDREN,
    prefix: str = "",
    depth: int = 0,
) -> str:
    """Render a compact box-drawing tree: directories first, noise filtered out."""
    if depth > max_depth:
        return ""

    children = sorted(node.children, key=lambda c: (c.kind != "dir", c.name.lower()))
    relevant = [c for c in children if not _is_ignored(c.name)]
    visible = relevant[:max_children]
    hidden = len(relevant) - len(visible)

    out: list[str] = []
    for index, child in enumerate(visible):
        is_last = index == len(visible) - 1 and hidden == 0
        marker = "└── " if is_last else "├── "
        suffix = "/" if child.kind == "dir" else ""
        out.append(f"{prefix}{marker}{child.name}{suffix}\n")
        if child.kind == "dir":
            child_prefix = prefix + ("    " if is_last else "│   ")
            out.append(render_tree_text(child, max_depth, max_children, child_prefix, depth + 1))

    if hidden > 0:
        out.append(f"{prefix}└── ... ({hidden} more files)\n")
    return "".join(out)


def build_diagram_prompt(repo_name: str, structure: TreeNode) -> str:
    return DIAGRAM_PROMPT_TEMPLATE.format(
        repo_name=repo_name,
        file_count=structure.count("file"),
        dir_count=structure.count("dir"),
        tree=render_tree_text(structure),
    )
