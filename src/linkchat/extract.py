"""Scan free-form text for file paths, fenced code blocks and languages.

Everything in this module is a pure string operation: nothing here touches
the filesystem. The heuristics are ordered rule tables evaluated
first-match-wins, so the order of entries is part of the behaviour.
"""

import json
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Callable, Iterable, Optional


# =============================================================================
# Keyword matching
# =============================================================================

def _keyword_pattern(keyword: str) -> str:
    """Regex fragment for one keyword.

    ASCII keywords must stand alone (so "cr" does not fire inside "create"),
    CJK keywords match as plain substrings since there are no word breaks.
    """
    escaped = re.escape(keyword)
    if keyword.isascii():
        return rf"(?<![A-Za-z0-9_]){escaped}(?![A-Za-z0-9_])"
    return escaped


def compile_keywords(keywords: Iterable[str]) -> re.Pattern:
    """Compile a bilingual keyword set into one case-insensitive pattern."""
    ordered = sorted(set(keywords), key=len, reverse=True)
    return re.compile("|".join(_keyword_pattern(k) for k in ordered), re.IGNORECASE)


def contains_keyword(text: str, keywords: Iterable[str]) -> bool:
    """Check whether any keyword occurs in text."""
    if not text:
        return False
    return compile_keywords(keywords).search(text) is not None


# =============================================================================
# Languages and extensions
# =============================================================================

LANGUAGE_EXTENSIONS = {
    "javascript": [".js", ".jsx", ".mjs", ".cjs"],
    "typescript": [".ts", ".tsx"],
    "python": [".py", ".pyw"],
    "java": [".java"],
    "go": [".go"],
    "rust": [".rs"],
    "c": [".c", ".h"],
    "cpp": [".cpp", ".cc", ".cxx", ".hpp", ".h"],
    "csharp": [".cs"],
    "php": [".php"],
    "ruby": [".rb"],
    "swift": [".swift"],
    "kotlin": [".kt"],
    "html": [".html", ".htm"],
    "css": [".css", ".scss", ".less"],
    "json": [".json"],
    "yaml": [".yaml", ".yml"],
    "markdown": [".md", ".markdown"],
    "bash": [".sh", ".bash"],
    "sql": [".sql"],
    "xml": [".xml"],
    "toml": [".toml"],
    "vue": [".vue"],
    "txt": [".txt"],
}

LANGUAGE_ALIASES = {
    "js": "javascript",
    "node": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "python3": "python",
    "golang": "go",
    "rs": "rust",
    "c++": "cpp",
    "cs": "csharp",
    "c#": "csharp",
    "rb": "ruby",
    "sh": "bash",
    "shell": "bash",
    "zsh": "bash",
    "console": "bash",
    "yml": "yaml",
    "md": "markdown",
    "htm": "html",
    "scss": "css",
    "text": "txt",
    "plaintext": "txt",
    "": "txt",
}

# Extensions recognised when scanning text for file paths
FILE_EXTENSIONS = sorted(
    {ext.lstrip(".") for exts in LANGUAGE_EXTENSIONS.values() for ext in exts}
    | {"csv", "ini", "cfg", "env", "lock", "log", "docx", "pdf", "xlsx"},
    key=len,
    reverse=True,
)

_EXT = "|".join(re.escape(e) for e in FILE_EXTENSIONS)


def normalize_language(language: Optional[str]) -> str:
    """Map a fence tag or alias onto a canonical language name."""
    tag = (language or "").strip().lower()
    return LANGUAGE_ALIASES.get(tag, tag)


def extension_for_language(language: Optional[str]) -> str:
    """Preferred file extension for a language (".txt" when unknown)."""
    exts = LANGUAGE_EXTENSIONS.get(normalize_language(language))
    return exts[0] if exts else ".txt"


def is_language_match(language: Optional[str], file_path: str) -> bool:
    """Check whether a file's extension belongs to the given language."""
    suffix = PurePath(file_path).suffix.lower()
    if not suffix:
        return False
    return suffix in LANGUAGE_EXTENSIONS.get(normalize_language(language), [])


# =============================================================================
# File paths
# =============================================================================

PATH_PATTERNS = [
    # ./app.js, ../lib/x.py, /abs/file.md, src/components/Button.tsx
    re.compile(
        rf"(?<![\w./\\-])("
        rf"(?:(?:\.{{1,2}}/|/)(?:[\w.-]+/)*|(?:[\w.-]+/)+)"
        rf"[\w-][\w.-]*\.(?:{_EXT}))(?![\w])",
        re.IGNORECASE,
    ),
    # "hello.py" or 'notes.md'
    re.compile(rf"[\"']([^\"'\s]+\.(?:{_EXT}))[\"']", re.IGNORECASE),
    # `utils.ts`
    re.compile(rf"`([^`\s]+\.(?:{_EXT}))`", re.IGNORECASE),
]

COMMON_FILENAMES = [
    "README.md",
    "CHANGELOG.md",
    "package.json",
    "tsconfig.json",
    "requirements.txt",
    "pyproject.toml",
    "setup.py",
    "Cargo.toml",
    "go.mod",
    "Dockerfile",
    "docker-compose.yml",
    "Makefile",
    ".gitignore",
    ".env",
    "index.html",
    "index.js",
    "index.ts",
    "main.js",
    "main.ts",
    "main.py",
    "main.go",
    "app.js",
    "app.ts",
    "app.py",
    "server.js",
    "style.css",
    "config.json",
]


def extract_file_paths(text: str) -> list[str]:
    """Find path-like tokens in free-form text.

    Results keep the order of first occurrence and contain no duplicates.
    A hit that overlaps an earlier, longer hit (e.g. the allowlisted
    "app.js" inside "src/app.js") is dropped.
    """
    if not text:
        return []

    hits: list[tuple[int, int, str]] = []
    for pattern in PATH_PATTERNS:
        for match in pattern.finditer(text):
            hits.append((match.start(1), match.end(1), match.group(1)))

    lowered = text.lower()
    for name in COMMON_FILENAMES:
        start = lowered.find(name.lower())
        if start != -1:
            hits.append((start, start + len(name), text[start:start + len(name)]))

    # Earliest first; on a tie the longer span wins
    hits.sort(key=lambda h: (h[0], -(h[1] - h[0])))

    kept: list[tuple[int, int]] = []
    paths: list[str] = []
    for start, end, path in hits:
        if any(start < k_end and end > k_start for k_start, k_end in kept):
            continue
        kept.append((start, end))
        if path not in paths:
            paths.append(path)
    return paths


# =============================================================================
# Code blocks
# =============================================================================

@dataclass
class CodeBlock:
    """A code excerpt found in a model response."""
    language: str
    content: str

    @property
    def line_count(self) -> int:
        return len(self.content.splitlines()) if self.content else 0


FENCE_PATTERN = re.compile(r"```[ \t]*([\w+#.-]*)[^\n]*\n(.*?)```", re.DOTALL)

CODE_INDICATORS = [
    re.compile(r"^\s*(async\s+)?(def|class)\s+\w+.*:\s*$", re.MULTILINE),
    re.compile(r"\bfunction\s*\w*\s*\("),
    re.compile(r"^\s*(import|from)\s+[\w.@/'\"]+", re.MULTILINE),
    re.compile(r"^\s*(const|let|var)\s+\w+\s*=", re.MULTILINE),
    re.compile(r"=>"),
    re.compile(r"^\s*#include\s*[<\"]", re.MULTILINE),
    re.compile(r"[;{}]\s*$", re.MULTILINE),
    re.compile(r"^\s*(public|private|protected)\s+\w+", re.MULTILINE),
    re.compile(r"^\s*return\b", re.MULTILINE),
]


def _trim_blank_lines(content: str) -> str:
    """Drop leading and trailing blank lines; every other line is kept as is."""
    lines = content.split("\n")
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return "\n".join(lines)


def has_fenced_block(text: str) -> bool:
    """Check for at least one well-formed fenced block."""
    return bool(text) and FENCE_PATTERN.search(text) is not None


def looks_like_code(text: str) -> bool:
    """Guess whether unfenced text is source code (two or more indicators)."""
    if not text or not text.strip():
        return False
    hits = sum(1 for indicator in CODE_INDICATORS if indicator.search(text))
    return hits >= 2


def extract_code_blocks(text: str) -> list[CodeBlock]:
    """Return fenced code blocks in source order.

    Blocks without a language tag are labelled "text". When the text has no
    fence at all but reads like code, the whole text becomes one block.
    """
    if not text:
        return []

    blocks = [
        CodeBlock(
            language=(match.group(1) or "text").lower(),
            content=_trim_blank_lines(match.group(2)),
        )
        for match in FENCE_PATTERN.finditer(text)
    ]

    if not blocks and looks_like_code(text):
        content = _trim_blank_lines(text)
        blocks.append(CodeBlock(language=detect_language_from_content(content), content=content))

    return blocks


# =============================================================================
# Language detection
# =============================================================================

def _regex(pattern: str, flags: int = re.MULTILINE) -> Callable[[str], bool]:
    compiled = re.compile(pattern, flags)
    return lambda content: compiled.search(content) is not None


def _looks_like_json(content: str) -> bool:
    stripped = content.strip()
    if not stripped or stripped[0] not in "{[":
        return False
    try:
        json.loads(stripped)
    except ValueError:
        return False
    return True


_YAML_KEY = re.compile(r"^\s*(- )?[\w.-]+:(\s+\S.*)?$")


def _looks_like_yaml(content: str) -> bool:
    lines = [l for l in content.splitlines() if l.strip() and not l.strip().startswith("#")]
    if len(lines) < 2 or "{" in content or ";" in content:
        return False
    keyed = sum(1 for l in lines if _YAML_KEY.match(l))
    return keyed >= 2 and keyed * 2 >= len(lines)


_MD_HEADING = re.compile(r"^#{1,6}\s+\S", re.MULTILINE)
_MD_LIST = re.compile(r"^\s*([-*+]|\d+\.)\s+\S", re.MULTILINE)
_MD_LINK = re.compile(r"\[[^\]]+\]\([^)]+\)")


def _looks_like_markdown(content: str) -> bool:
    if _MD_HEADING.search(content) or _MD_LINK.search(content):
        return True
    return len(_MD_LIST.findall(content)) >= 2


LANGUAGE_MARKERS: list[tuple[Callable[[str], bool], str]] = [
    # Unambiguous markers that would otherwise trip the JS checks below
    (_regex(r"^\s*package\s+\w+\s*$[\s\S]*\bfunc\s+"), "go"),
    (_regex(r"\bfn\s+\w+\s*\(.*\)\s*(->\s*\S+\s*)?\{"), "rust"),
    (_regex(r"^\s*#include\s*[<\"]"), "c"),
    # import / export
    (_regex(r"^\s*(import\s+[\w{}*,\s]+\s+from\s+['\"]|import\s+['\"]"
            r"|export\s+(default\s+)?(const|let|function|class|interface|type)\b)"), "javascript"),
    (_regex(r"^\s*(from\s+[\w.]+\s+import\s+\S|import\s+[\w.]+(\s+as\s+\w+)?\s*$)"), "python"),
    # function
    (_regex(r"\bfunction\s*\w*\s*\(|^\s*(const|let|var)\s+\w+\s*=|\)\s*=>"), "javascript"),
    # class
    (_regex(r"\bpublic\s+(static\s+)?(final\s+)?(class|void|interface)\b"), "java"),
    (_regex(r"^\s*class\s+\w+(\(.*\))?\s*:\s*$"), "python"),
    (_regex(r"^\s*class\s+\w+(\s+extends\s+[\w.]+)?\s*\{"), "javascript"),
    # interface
    (_regex(r"^\s*(export\s+)?(interface\s+\w+\s*\{|type\s+\w+\s*=)"), "typescript"),
    # def
    (_regex(r"^\s*(async\s+)?def\s+\w+\s*\(.*\)\s*(->\s*[^:]+)?:"), "python"),
    # html tags (ahead of css so inline <style> stays html)
    (_regex(r"<!DOCTYPE\s+html|<(html|head|body|div|span|script|style|p|ul|table)\b[^>]*>",
            re.IGNORECASE), "html"),
    # css selectors
    (_regex(r"^\s*[.#@]?[\w-]+([\s,>+~:]+[.#]?[\w-]+)*\s*\{[^}]*?[\w-]+\s*:\s*[^;{}]+;"), "css"),
    (_looks_like_json, "json"),
    (_looks_like_yaml, "yaml"),
    (_looks_like_markdown, "markdown"),
    # shebang
    (_regex(r"\A#!.*\bpython"), "python"),
    (_regex(r"\A#!.*\bnode\b"), "javascript"),
    (_regex(r"\A#!.*\b(ba|z)?sh\b"), "bash"),
]

_TS_MARKERS = re.compile(
    r":\s*(string|number|boolean|any|void|unknown)\b|^\s*(export\s+)?interface\s+\w+",
    re.MULTILINE,
)
_CPP_MARKERS = re.compile(r"std::|\bcout\b|\bnamespace\b|\bclass\s+\w+|#include\s*<(iostream|vector|string|map)>")

LANGUAGE_HINTS = [
    (compile_keywords(["typescript"]), "typescript"),
    (compile_keywords(["javascript", "js", "node.js", "nodejs", "react"]), "javascript"),
    (compile_keywords(["python", "py"]), "python"),
    (compile_keywords(["java"]), "java"),
    (compile_keywords(["golang"]), "go"),
    (compile_keywords(["rust"]), "rust"),
    (compile_keywords(["c++", "cpp"]), "cpp"),
    (compile_keywords(["html", "网页"]), "html"),
    (compile_keywords(["css", "样式"]), "css"),
    (compile_keywords(["json"]), "json"),
    (compile_keywords(["yaml", "yml"]), "yaml"),
    (compile_keywords(["markdown", "文档"]), "markdown"),
    (compile_keywords(["bash", "shell", "sh"]), "bash"),
    (compile_keywords(["sql"]), "sql"),
]


def detect_language_from_content(content: str, hint_text: str = "") -> str:
    """Guess a language from code, falling back to language names in hint_text.

    Returns "txt" when neither the content nor the hint gives anything away.
    """
    if content:
        for matches, language in LANGUAGE_MARKERS:
            if matches(content):
                if language == "javascript" and _TS_MARKERS.search(content):
                    return "typescript"
                if language == "c" and _CPP_MARKERS.search(content):
                    return "cpp"
                return language

    if hint_text:
        for pattern, language in LANGUAGE_HINTS:
            if pattern.search(hint_text):
                return language

    return "txt"
