"""Decide whether a model reply becomes files on disk, and where.

The decision looks at the user's original utterance, never at the
model's wording, except for the confirmation gate which inspects the
reply for a full-file code block or a "modified code" phrase.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from linkchat.extract import (
    FILE_EXTENSIONS, CodeBlock, compile_keywords, detect_language_from_content,
    extension_for_language, extract_code_blocks, extract_file_paths,
    has_fenced_block, is_language_match, normalize_language,
)
from linkchat.files import ContentStore, EditResult
from linkchat.ui import Console
from linkchat.workspace import ProjectShape, detect_project_shape


logger = logging.getLogger(__name__)

REVIEW_OR_MODIFY_KEYWORDS = [
    "cr", "review", "modify", "improve", "refactor", "fix", "help", "bug",
    "optimize", "change", "update", "edit",
    "审查", "检查", "修改", "改进", "重构", "修复", "优化", "帮我", "帮忙", "问题", "错误",
]

SAVE_KEYWORDS = [
    "save", "write", "create", "generate", "file", "output", "export",
    "保存", "写入", "创建", "生成", "文件", "输出", "导出",
]

CODE_GENERATION_KEYWORDS = [
    "write a", "create a", "generate", "implement", "build a",
    "function", "class", "script",
    "写一个", "创建一个", "实现", "编写", "函数", "脚本", "代码",
]

MODIFIED_CODE_MARKERS = [
    "修改后的代码", "重构后的代码", "优化后的代码", "修复后的代码", "改进后的代码",
    "modified code", "refactored code", "updated code", "fixed code", "improved code",
]

CONFIRM_KEYWORDS = ["yes", "y", "是", "应用", "确认", "apply", "confirm"]

# A block longer than this reads as a whole file rather than a snippet
FULL_FILE_LINES = 10

DEFAULT_BASE_NAME = "ai-generated"

_REVIEW_OR_MODIFY = compile_keywords(REVIEW_OR_MODIFY_KEYWORDS)
_SAVE = compile_keywords(SAVE_KEYWORDS)
_CODE_GENERATION = compile_keywords(CODE_GENERATION_KEYWORDS)
_MODIFIED_CODE = compile_keywords(MODIFIED_CODE_MARKERS)
_CONFIRM = compile_keywords(CONFIRM_KEYWORDS)

_FILENAME = re.compile(
    r"(?<![\w./\\-])([A-Za-z0-9_-]+\.(?:%s))(?![\w.])" % "|".join(re.escape(e) for e in FILE_EXTENSIONS),
    re.IGNORECASE,
)
# Framework and runtime names that look like file names
FRAMEWORK_NAMES = {
    "node.js", "nodejs", "vue.js", "next.js", "nuxt.js", "react.js", "express.js",
    "angular.js", "ember.js", "backbone.js", "three.js", "d3.js", "chart.js",
    "socket.io", "nest.js", "deno.js", "svelte.js", "alpine.js",
}
_NAMED = re.compile(r"(?:\b(?:named|called)\s+|(?:叫做?|名为|命名为)\s*)([A-Za-z0-9_-]+)", re.IGNORECASE)

# First match wins; (keywords, directory, lives under src/ in a src project)
SUBDIRECTORY_HINTS = [
    (compile_keywords(["component", "components", "组件"]), "components", True),
    (compile_keywords(["service", "services", "api", "服务"]), "services", True),
    (compile_keywords(["util", "utils", "helper", "helpers", "工具"]), "utils", True),
    (compile_keywords(["style", "styles", "css", "样式"]), "styles", True),
    (compile_keywords(["template", "templates", "模板"]), "templates", True),
    (compile_keywords(["doc", "docs", "readme", "文档"]), "docs", False),
    (compile_keywords(["test", "tests", "spec", "测试"]), "tests", False),
]

LANGUAGE_SUBDIRECTORIES = {
    "css": ("styles", True),
    "html": ("templates", True),
    "markdown": ("docs", False),
}


# =============================================================================
# Classification
# =============================================================================

def is_review_or_modify(utterance: str) -> bool:
    return bool(utterance) and _REVIEW_OR_MODIFY.search(utterance) is not None


def is_code_generation(utterance: str) -> bool:
    return bool(utterance) and _CODE_GENERATION.search(utterance) is not None


def needs_saving(utterance: str, response: str) -> bool:
    """Whether a reply should be written anywhere at all."""
    return (
        (bool(utterance) and _SAVE.search(utterance) is not None)
        or is_review_or_modify(utterance)
        or has_fenced_block(response)
        or is_code_generation(utterance)
    )


def requires_confirmation(response: str, blocks: list[CodeBlock]) -> bool:
    """The gate only opens for a full-file block or a "modified code" phrase."""
    if any(block.line_count > FULL_FILE_LINES for block in blocks):
        return True
    return bool(response) and _MODIFIED_CODE.search(response) is not None


def is_confirmed(answer: str) -> bool:
    return bool(answer) and _CONFIRM.search(answer) is not None


def select_block(blocks: list[CodeBlock], path: str) -> Optional[CodeBlock]:
    """The first block whose language fits the file, else the first block."""
    for block in blocks:
        if is_language_match(block.language, path):
            return block
    return blocks[0] if blocks else None


def line_delta(path: str, before: Optional[str], after: str) -> str:
    """Before/after line counts, e.g. ``app.js: 20 → 15 lines (-5)``."""
    old = len(before.splitlines()) if before else 0
    new = len(after.splitlines())
    return f"{path}: {old} → {new} lines ({new - old:+d})"


# =============================================================================
# Location inference
# =============================================================================

def infer_base_name(utterance: str) -> str:
    """A file name mentioned in the utterance, a "named X" phrase, or the default."""
    for match in _FILENAME.finditer(utterance or ""):
        if match.group(1).lower() not in FRAMEWORK_NAMES:
            return match.group(1)
    match = _NAMED.search(utterance or "")
    if match:
        return match.group(1)
    return DEFAULT_BASE_NAME


def infer_subdirectory(utterance: str, language: str, shape: ProjectShape) -> Optional[str]:
    """Directory below the output root suggested by the utterance or language."""
    hint = None
    for pattern, directory, under_src in SUBDIRECTORY_HINTS:
        if pattern.search(utterance or ""):
            hint = (directory, under_src)
            break
    if hint is None:
        hint = LANGUAGE_SUBDIRECTORIES.get(normalize_language(language))
    if hint is None:
        return None

    directory, under_src = hint
    if directory == "tests":
        return shape.test_dir or "tests"
    if under_src and shape.has_src:
        return f"src/{directory}"
    return directory


@dataclass
class SaveTarget:
    path: str
    content: str


def infer_target(
    utterance: str,
    response: str,
    blocks: list[CodeBlock],
    shape: ProjectShape,
    output_directory: str = ".",
) -> SaveTarget:
    """Where an unaddressed reply goes, and what is written there."""
    block = blocks[0] if blocks else None
    if block is not None:
        language = normalize_language(block.language)
        if language == "txt":
            language = detect_language_from_content(block.content, utterance)
        content = block.content
    else:
        language = detect_language_from_content(response, utterance)
        content = response

    name = infer_base_name(utterance)
    if block is not None and "." in name:
        block = select_block(blocks, name) or block
        content = block.content
    if "." not in name:
        name += extension_for_language(language)

    subdirectory = infer_subdirectory(utterance, language, shape)
    base = Path(output_directory or ".")
    path = base / subdirectory / name if subdirectory else base / name
    return SaveTarget(path=path.as_posix(), content=content)


# =============================================================================
# Policy
# =============================================================================

class PersistencePolicy:
    """Write reply content to disk after a turn, when the rules say so."""

    def __init__(
        self,
        store: ContentStore,
        console: Console,
        output_directory: str = ".",
        root: Optional[Path] = None,
    ):
        self.store = store
        self.console = console
        self.output_directory = output_directory
        self.root = root

    def apply(self, utterance: str, response: str) -> list[EditResult]:
        """Run the save decision for one finished turn.

        Returns the result of every attempted write, successful or not.
        """
        if not needs_saving(utterance, response):
            logger.debug("Nothing to save for this turn")
            return []

        paths = extract_file_paths(utterance)
        blocks = extract_code_blocks(response)

        if paths and is_review_or_modify(utterance):
            return self._apply_reviewed(paths, response, blocks)
        if paths:
            return [self._write(path, self._content_for(path, response, blocks)) for path in paths]

        shape = detect_project_shape(self.root)
        logger.debug(
            "Project at %s: project=%s src=%s tests=%s docs=%s",
            shape.root, shape.is_project, shape.has_src, shape.test_dir, shape.has_docs,
        )
        target = infer_target(utterance, response, blocks, shape, self.output_directory)
        if not target.content.strip():
            logger.debug("Empty reply, nothing written")
            return []
        return [self._write(target.path, target.content)]

    def _content_for(self, path: str, response: str, blocks: list[CodeBlock]) -> str:
        block = select_block(blocks, path)
        return block.content if block else response

    def _apply_reviewed(self, paths: list[str], response: str, blocks: list[CodeBlock]) -> list[EditResult]:
        if not blocks:
            self.console.warning("No code block in the reply; nothing to apply.")
            return []

        if not requires_confirmation(response, blocks):
            logger.debug("Reply does not look like a full modification; not prompting")
            return []

        targets = ", ".join(paths)
        answer = self.console.confirm(f"Apply the suggested code to {targets}? (yes/no)")
        if not is_confirmed(answer):
            self.console.info("Not applied. The suggestion above is left as text only.")
            return []

        results = []
        for path in paths:
            result = self._write(path, self._content_for(path, response, blocks))
            if result.success:
                self.console.info(line_delta(path, result.original_content, result.new_content or ""))
            results.append(result)
        return results

    def _write(self, path: str, content: str) -> EditResult:
        # Each file stands alone; one failure never blocks the rest
        try:
            result = self.store.write(path, content, backup=True)
        except Exception as e:
            logger.exception("Unexpected error writing %s", path)
            result = EditResult.fail(str(e), path)
        self.console.file_result(result)
        return result
