"""Input type classification."""

import re
from enum import Enum


class InputType(Enum):
    """Types of user input."""
    EMPTY = "empty"          # blank line
    COMMAND = "command"      # /help, /read app.js
    CHAT = "chat"            # anything for the model


class Classifier:
    """Classify user input into types."""

    # "/read" is a command, "/src/app.js looks wrong" is chat
    COMMAND_PATTERN = re.compile(r"^/([A-Za-z][\w-]*)(?=\s|$)")

    def classify(self, input_text: str) -> InputType:
        """Classify user input.

        Args:
            input_text: The raw user input.

        Returns:
            InputType indicating the classification.
        """
        text = input_text.strip()

        if not text:
            return InputType.EMPTY

        if self.COMMAND_PATTERN.match(text):
            return InputType.COMMAND

        return InputType.CHAT

    def extract_command(self, input_text: str) -> tuple[str, str]:
        """Extract command name and arguments from slash command.

        Args:
            input_text: Input starting with /

        Returns:
            Tuple of (command_name, arguments)
        """
        text = input_text.strip()
        if not text.startswith("/"):
            return "", text

        parts = text[1:].split(maxsplit=1)
        command = parts[0].lower() if parts else ""
        args = parts[1] if len(parts) > 1 else ""

        return command, args
