"""One chat turn: classify, maybe offer a menu, stream the reply, persist.

A turn moves through these states::

    IDLE -> CLASSIFYING -> CONVERSING ----------------> STREAMING -> PERSISTING -> IDLE
                        \\-> MENU -> EXECUTING -------/

Cancelling the menu (0 or anything that is not a listed number) ends the
turn without calling the backend. The assistant reply is only added to
the session once the stream has finished.
"""

import logging
from enum import Enum
from typing import Optional

from linkchat.enricher import ContextEnricher
from linkchat.intent import IntentAction, IntentAnalysis, IntentOption, analyze_intent
from linkchat.llm.base import ChatOptions, LinkError, LLMProvider, Message
from linkchat.persistence import PersistencePolicy
from linkchat.session import ChatSession, SessionStore
from linkchat.ui import Console


logger = logging.getLogger(__name__)

GENERIC_ERROR = "Sorry, I encountered an error. Please try again."

SYSTEM_PROMPT = """You are an AI assistant specialized in helping developers with coding tasks. You can:
1. Generate code in various programming languages
2. Review and analyze code for issues
3. Explain code functionality
4. Suggest improvements and best practices
5. Help with debugging and troubleshooting

Be helpful, concise, and provide practical solutions. When generating code, include comments and follow best practices."""


class TurnState(Enum):
    IDLE = "idle"
    CLASSIFYING = "classifying"
    CONVERSING = "conversing"
    MENU = "menu"
    EXECUTING = "executing"
    STREAMING = "streaming"
    PERSISTING = "persisting"


def action_instruction(action: IntentAction) -> str:
    """Instruction appended to the user prompt for a chosen option."""
    if action is IntentAction.REVIEW:
        return (
            "Review the code above. List concrete problems grouped by severity "
            "(bugs, security, performance, readability) and point to the lines involved."
        )
    elif action is IntentAction.REVIEW_REFACTOR:
        return (
            "Review the code above, then provide the complete refactored file in a single "
            "fenced code block introduced by the phrase \"重构后的代码\" (refactored code). "
            "Keep the existing behaviour unless a change fixes a bug you listed."
        )
    elif action is IntentAction.MODIFY:
        return (
            "Apply the requested change and return the complete modified file in a single "
            "fenced code block introduced by the phrase \"修改后的代码\" (modified code)."
        )
    elif action is IntentAction.CREATE:
        return (
            "Write complete, runnable code in one fenced code block tagged with its language. "
            "Include brief comments and no placeholder sections."
        )
    elif action is IntentAction.GUIDE:
        return "Explain the approach step by step. Show short snippets only where they help."
    else:
        # EXPLAIN, SECURITY, PERFORMANCE and TESTS rely on the option description alone
        return ""


def system_guidance(action: IntentAction) -> str:
    """Extra system-prompt text for a chosen option."""
    if action is IntentAction.REVIEW:
        return "You are acting as a careful code reviewer."
    elif action is IntentAction.REVIEW_REFACTOR:
        return "You are acting as a code reviewer who also delivers a full refactored version of the file."
    elif action is IntentAction.MODIFY:
        return "You are editing an existing file. Always return the whole file, never a diff."
    elif action is IntentAction.CREATE:
        return "You are writing new code from scratch."
    elif action is IntentAction.GUIDE:
        return "You are a patient mentor; favour explanation over finished code."
    else:
        return ""


class ResponseRouter:
    """Runs turns against one session. Not re-entrant."""

    def __init__(
        self,
        provider: LLMProvider,
        session: ChatSession,
        console: Console,
        enricher: ContextEnricher,
        policy: PersistencePolicy,
        session_store: Optional[SessionStore] = None,
        history_window: int = 0,
        auto_save: bool = True,
    ):
        self.provider = provider
        self.session = session
        self.console = console
        self.enricher = enricher
        self.policy = policy
        self.session_store = session_store
        self.history_window = history_window
        self.auto_save = auto_save
        self.state = TurnState.IDLE
        self._busy = False

    @property
    def busy(self) -> bool:
        return self._busy

    def handle(self, line: str) -> Optional[str]:
        """Run one turn for a chat line.

        Returns the assistant reply, or None when the turn was cancelled,
        ignored or failed.
        """
        if self._busy:
            self.console.warning("Still working on the previous message; input ignored.")
            return None

        self._busy = True
        try:
            return self._run_turn(line)
        except LinkError as e:
            logger.exception("Turn failed: %s", e.message)
            self.console.error(GENERIC_ERROR, e.suggestion)
        except Exception:
            logger.exception("Turn failed")
            self.console.error(GENERIC_ERROR)
        finally:
            self._busy = False
            self.state = TurnState.IDLE
        return None

    def _run_turn(self, line: str) -> Optional[str]:
        self.state = TurnState.CLASSIFYING
        analysis = analyze_intent(line)
        logger.debug("Intent: %s (options: %s)", analysis.intent.value, analysis.needs_options)

        system_prompt = SYSTEM_PROMPT
        if analysis.needs_options:
            self.state = TurnState.MENU
            option = self.console.choose(analysis.options)
            if option is None:
                self.console.info("Cancelled.")
                return None

            self.state = TurnState.EXECUTING
            message = self.build_prompt(analysis, option)
            guidance = system_guidance(option.action)
            if guidance:
                system_prompt = f"{SYSTEM_PROMPT}\n\n{guidance}"
        else:
            self.state = TurnState.CONVERSING
            message = self.enricher.enhance(line)

        self.state = TurnState.STREAMING
        response = self._stream(message, system_prompt)

        self.state = TurnState.PERSISTING
        self.policy.apply(line, response)
        if self.auto_save:
            self.save_session()
        return response

    def build_prompt(self, analysis: IntentAnalysis, option: IntentOption) -> str:
        """Utterance, chosen option, document context and action instruction."""
        parts = [
            analysis.context.original_input,
            f"Selected operation: {option.title} - {option.description}",
        ]
        if analysis.context.file_paths:
            context = self.enricher.build_context(analysis.context.file_paths)
            if context:
                parts.append(context)
        instruction = action_instruction(option.action)
        if instruction:
            parts.append(instruction)
        return "\n\n".join(parts)

    def _stream(self, message: str, system_prompt: str) -> str:
        messages = self.session.to_llm_messages(self.history_window)
        messages.append(Message(role="user", content=message))
        # The user turn is kept even if the reply fails
        self.session.add("user", message)

        self.console.stream_start()
        parts = []
        stream = self.provider.chat(messages, ChatOptions(system_prompt=system_prompt))
        try:
            for chunk in stream:
                if chunk.content:
                    self.console.stream_chunk(chunk.content)
                    parts.append(chunk.content)
                if chunk.done:
                    break
        finally:
            stream.close()
            self.console.stream_end()

        response = "".join(parts)
        self.session.add("assistant", response)
        return response

    def save_session(self) -> bool:
        """Write the session file; failures are reported, not raised."""
        if self.session_store is None:
            return False
        try:
            self.session_store.save(self.session)
        except OSError as e:
            logger.error("Failed to save session %s: %s", self.session.id, e)
            self.console.warning(f"Could not save session: {e}")
            return False
        return True
