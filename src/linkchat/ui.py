"""Terminal presentation: banners, streamed replies, menus and prompts."""

import sys
from typing import Callable, Optional

from linkchat.files import EditResult
from linkchat.intent import IntentOption
from linkchat.llm.base import ModelInfo
from linkchat.style import (
    ai_response_end, ai_response_start, bold, cyan, dim, green, red,
    section_header, yellow,
)


class Console:
    """All terminal output for the chat loop goes through here.

    ``input_fn`` reads one line; tests replace it with a scripted source.
    """

    def __init__(self, input_fn: Callable[[str], str] = input):
        self.input_fn = input_fn

    # -------------------------------------------------------------------------
    # Plain messages
    # -------------------------------------------------------------------------

    def print(self, text: str = "") -> None:
        print(text)

    def info(self, text: str) -> None:
        print(cyan(text))

    def success(self, text: str) -> None:
        print(green(text))

    def warning(self, text: str) -> None:
        print(yellow(text))

    def error(self, text: str, suggestion: str = "") -> None:
        print(red(text))
        if suggestion:
            print(dim(f"  Suggestion: {suggestion}"))

    def banner(self, endpoint: str, model: str, session_id: str) -> None:
        print(bold("link-chat") + dim(f"  session {session_id}"))
        print(f"Endpoint: {endpoint} | Model: {model}")
        print("\nType /help for commands, /exit to quit")

    # -------------------------------------------------------------------------
    # Input
    # -------------------------------------------------------------------------

    def ask(self, prompt: str) -> str:
        """Read one line; end of input counts as an empty answer."""
        try:
            return self.input_fn(prompt).strip()
        except EOFError:
            return ""

    def choose(self, options: list[IntentOption]) -> Optional[IntentOption]:
        """Show a numbered menu and return the pick, or None to cancel."""
        print(section_header("Choose an action"))
        for number, option in enumerate(options, 1):
            print(f"  {bold(str(number))}. {option.title}")
            print(dim(f"     {option.description}"))
        print(f"  {bold('0')}. 取消 (cancel)")

        answer = self.ask(f"Select [0-{len(options)}]: ")
        if not answer.isdigit():
            return None
        index = int(answer)
        if index < 1 or index > len(options):
            return None
        return options[index - 1]

    def confirm(self, question: str) -> str:
        """Ask a free-text question and return the raw answer."""
        print(yellow(question))
        return self.ask("> ")

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------

    def stream_start(self) -> None:
        print(ai_response_start())

    def stream_chunk(self, text: str) -> None:
        sys.stdout.write(text)
        sys.stdout.flush()

    def stream_end(self) -> None:
        print()
        print(ai_response_end())

    # -------------------------------------------------------------------------
    # Structured output
    # -------------------------------------------------------------------------

    def file_result(self, result: EditResult) -> None:
        if result.success:
            self.success(result.message)
            if result.backup_path:
                print(dim(f"  Backup: {result.backup_path}"))
        else:
            self.error(f"Failed: {result.path}: {result.error}")

    def models(self, models: list[ModelInfo], current: str) -> None:
        if not models:
            print("No models installed.")
            return
        print("Installed models:")
        for info in models:
            marker = green("*") if info.name == current else " "
            print(f"  {marker} {info.name:<32} {info.size_display:>10}  {dim(info.modified[:19])}")
