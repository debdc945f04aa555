"""Classify a user utterance as conversation or a structured intent."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from linkchat.extract import compile_keywords, extract_file_paths


class Intent(Enum):
    CONVERSATION = "conversation"
    CODE_REVIEW = "code_review"
    MODIFICATION = "modification"
    CREATION = "creation"
    HELP = "help"


class IntentAction(Enum):
    """What a chosen menu option asks the model to do."""
    REVIEW = "review"
    REVIEW_REFACTOR = "review_refactor"
    MODIFY = "modify"
    CREATE = "create"
    GUIDE = "guide"
    EXPLAIN = "explain"
    SECURITY = "security"
    PERFORMANCE = "performance"
    TESTS = "tests"


@dataclass(frozen=True)
class IntentOption:
    id: str
    title: str
    description: str
    action: IntentAction


@dataclass
class IntentContext:
    file_paths: list[str] = field(default_factory=list)
    original_input: str = ""


@dataclass
class IntentAnalysis:
    needs_options: bool
    intent: Intent
    options: list[IntentOption] = field(default_factory=list)
    context: IntentContext = field(default_factory=IntentContext)


# Coarse gate. Also carries terms no family claims (debug/test), so an
# utterance can pass here and still end up as plain conversation.
COMPLEX_OPERATION_KEYWORDS = [
    "review", "cr", "check", "analyze", "modify", "change", "update", "optimize",
    "improve", "refactor", "fix", "create", "generate", "write", "build", "implement",
    "help", "how to", "debug", "test",
    "审查", "检查", "分析", "修改", "更改", "优化", "改进", "重构", "修复",
    "创建", "生成", "编写", "新建", "实现", "帮助", "帮我", "怎么", "如何", "调试", "测试",
]

CODE_REVIEW_KEYWORDS = [
    "cr", "review", "code review", "check", "audit", "inspect", "analyze",
    "审查", "检查", "评审", "代码审查", "分析",
]

MODIFICATION_KEYWORDS = [
    "modify", "change", "update", "edit", "optimize", "improve", "refactor", "fix", "rewrite",
    "修改", "更改", "优化", "改进", "重构", "修复", "改写",
]

CREATION_KEYWORDS = [
    "create", "generate", "write", "build", "make", "new", "implement",
    "创建", "生成", "编写", "新建", "实现", "写一个",
]

HELP_KEYWORDS = [
    "help", "how to", "how do", "explain", "guide", "tutorial",
    "帮助", "帮我", "怎么", "如何", "解释", "教程",
]


# =============================================================================
# Option generators
# =============================================================================

def _review_options(paths: list[str]) -> list[IntentOption]:
    if paths:
        target = ", ".join(paths)
        return [
            IntentOption("review", "代码审查", f"检查 {target} 的代码质量、潜在问题和最佳实践", IntentAction.REVIEW),
            IntentOption("review_refactor", "审查 + 重构方案", f"审查 {target} 并给出完整的重构后代码", IntentAction.REVIEW_REFACTOR),
            IntentOption("security", "安全审查", f"重点检查 {target} 的安全漏洞和风险", IntentAction.SECURITY),
            IntentOption("performance", "性能分析", f"分析 {target} 的性能瓶颈并给出优化建议", IntentAction.PERFORMANCE),
        ]
    return [
        IntentOption("review_pasted", "审查粘贴的代码", "审查消息中提供的代码片段", IntentAction.REVIEW),
        IntentOption("checklist", "审查清单", "列出适用于该场景的代码审查要点", IntentAction.EXPLAIN),
        IntentOption("guidance", "获取指导", "说明如何准备和进行代码审查", IntentAction.GUIDE),
    ]


def _modification_options(paths: list[str]) -> list[IntentOption]:
    if paths:
        target = ", ".join(paths)
        return [
            IntentOption("modify", "直接修改", f"按要求修改 {target} 并返回完整的修改后代码", IntentAction.MODIFY),
            IntentOption("refactor_plan", "重构方案", f"先审查 {target}，再给出重构后的完整代码", IntentAction.REVIEW_REFACTOR),
            IntentOption("optimize", "性能优化", f"优化 {target} 的性能", IntentAction.PERFORMANCE),
            IntentOption("explain_changes", "修改说明", "解释需要做哪些修改以及原因，不直接改代码", IntentAction.EXPLAIN),
        ]
    return [
        IntentOption("example", "修改示例", "给出一个展示修改方法的代码示例", IntentAction.MODIFY),
        IntentOption("practices", "最佳实践", "说明此类修改的常见做法和注意事项", IntentAction.EXPLAIN),
        IntentOption("guidance", "获取指导", "分步骤说明如何完成修改", IntentAction.GUIDE),
    ]


def _creation_options(paths: list[str]) -> list[IntentOption]:
    if paths:
        target = ", ".join(paths)
        return [
            IntentOption("create_file", "创建文件", f"生成 {target} 的完整内容", IntentAction.CREATE),
            IntentOption("create_with_tests", "创建并附带测试", f"生成 {target} 以及对应的单元测试", IntentAction.TESTS),
            IntentOption("design_first", "先设计后实现", f"先说明 {target} 的结构设计，再给出实现", IntentAction.EXPLAIN),
            IntentOption("guidance", "获取指导", "说明实现思路，不直接生成代码", IntentAction.GUIDE),
        ]
    return [
        IntentOption("generate", "生成代码", "直接生成完整可运行的代码", IntentAction.CREATE),
        IntentOption("generate_with_tests", "生成代码和测试", "生成代码以及对应的单元测试", IntentAction.TESTS),
        IntentOption("guidance", "获取指导", "说明实现思路和步骤", IntentAction.GUIDE),
    ]


def _help_options(paths: list[str]) -> list[IntentOption]:
    if paths:
        target = ", ".join(paths)
        return [
            IntentOption("explain_code", "解释代码", f"解释 {target} 的功能和结构", IntentAction.EXPLAIN),
            IntentOption("usage", "使用指导", f"说明如何使用或扩展 {target}", IntentAction.GUIDE),
            IntentOption("troubleshoot", "问题排查", f"排查 {target} 中可能存在的问题", IntentAction.REVIEW),
        ]
    return [
        IntentOption("step_by_step", "分步指导", "一步一步说明怎么做", IntentAction.GUIDE),
        IntentOption("concepts", "概念解释", "解释相关的概念和原理", IntentAction.EXPLAIN),
        IntentOption("example", "示例代码", "给出一个可运行的示例", IntentAction.CREATE),
    ]


# Evaluated in order; the first family whose keywords match wins
INTENT_RULES: list[tuple[object, Intent, Callable[[list[str]], list[IntentOption]]]] = [
    (compile_keywords(CODE_REVIEW_KEYWORDS), Intent.CODE_REVIEW, _review_options),
    (compile_keywords(MODIFICATION_KEYWORDS), Intent.MODIFICATION, _modification_options),
    (compile_keywords(CREATION_KEYWORDS), Intent.CREATION, _creation_options),
    (compile_keywords(HELP_KEYWORDS), Intent.HELP, _help_options),
]

_COMPLEX_OPERATION = compile_keywords(COMPLEX_OPERATION_KEYWORDS)


def analyze_intent(utterance: str) -> IntentAnalysis:
    """Decide whether an utterance needs a menu of structured options."""
    context = IntentContext(original_input=utterance)

    if not utterance or not _COMPLEX_OPERATION.search(utterance):
        return IntentAnalysis(needs_options=False, intent=Intent.CONVERSATION, context=context)

    context.file_paths = extract_file_paths(utterance)

    for pattern, intent, make_options in INTENT_RULES:
        if pattern.search(utterance):
            return IntentAnalysis(
                needs_options=True,
                intent=intent,
                options=make_options(context.file_paths),
                context=context,
            )

    return IntentAnalysis(needs_options=False, intent=Intent.CONVERSATION, context=context)
