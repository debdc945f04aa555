"""CLI entry point and chat REPL."""

import atexit
import logging
import os
import sys
from pathlib import Path
from typing import Optional

import click

from linkchat import __version__
from linkchat.classifier import Classifier, InputType
from linkchat.config import Config, ConfigurationError, parse_value
from linkchat.documents import DocumentStore, MarkdownDocument, StructuredData, detect_format
from linkchat.enricher import ContextEnricher, render_document
from linkchat.files import ContentStore, FileOperationError
from linkchat.llm import LinkError, LLMProvider, OllamaProvider
from linkchat.log import configure_logging
from linkchat.persistence import PersistencePolicy
from linkchat.router import ResponseRouter
from linkchat.session import ChatSession, SessionStore, format_session, format_session_list
from linkchat.style import dim, green, red, user_prompt_marker, yellow
from linkchat.ui import Console
from linkchat.workspace import find_local_config, global_config_path, logs_dir, sessions_dir, user_dir

# Line editing and history where the platform has it
try:
    import readline
except ImportError:
    readline = None


logger = logging.getLogger(__name__)

HELP_TEXT = """
link-chat - local AI coding assistant
=====================================

Chat:
  Type a message and press Enter. Requests such as "cr app.js" or
  "refactor utils.py" offer a menu of actions first.

Session:
  /help                          Show this help
  /exit, /quit                   Save the session and exit
  /clear                         Clear the conversation
  /save                          Save the session now
  /history                       Show this session's messages
  /history --list|--clear        List or delete saved sessions
  /history --show|--delete ID     Print or delete a saved session
  /history --export ID [-o DIR]  Export a saved session as Markdown
  /models                        List installed models
  /config                        Show current configuration

Files:
  /read <path>                   Print a file
  /write <path> <content>        Write content to a file (backup first)
  /edit <path>                   Show file info
  /edit <path> <line> <content>  Replace one line
  /delete <path>                 Delete a file (backup first)

Documents (markdown, json, yaml, txt; docx/pdf/xlsx read-only):
  /doc read <path>               Parsed document with metadata
  /doc write <path> <content>    Write a document in its format
  /doc info <path>               Format, size and structure
  /search <path> <query>         Lines containing query
  /convert <src> <dst> [format]  Convert between formats
"""


class LinkREPL:
    """Interactive chat loop for link-chat."""

    def __init__(
        self,
        config: Config,
        provider: LLMProvider,
        console: Optional[Console] = None,
        session_store: Optional[SessionStore] = None,
        base_dir: Optional[Path] = None,
    ):
        self.config = config
        self.provider = provider
        self.console = console or Console()
        self.classifier = Classifier()

        self.store = ContentStore(
            base_dir=base_dir,
            restricted_paths=config.security.restricted_paths,
            max_file_size=config.security.max_file_size,
        )
        self.documents = DocumentStore(self.store)
        self.enricher = ContextEnricher(self.documents, self.store)
        self.policy = PersistencePolicy(
            self.store,
            self.console,
            output_directory=config.code_generation.output_directory,
            root=base_dir,
        )

        self.session_store = session_store or SessionStore(sessions_dir())
        self.session = ChatSession(model=config.ollama.model)
        self.router = ResponseRouter(
            provider=provider,
            session=self.session,
            console=self.console,
            enricher=self.enricher,
            policy=self.policy,
            session_store=self.session_store,
            history_window=config.ollama.history_window,
            auto_save=config.ui.auto_save,
        )

        self.history_file: Optional[Path] = None
        self._setup_readline()

    def _setup_readline(self) -> None:
        """Setup readline for arrow key navigation and history."""
        if readline is None:
            return

        self.history_file = user_dir() / "history"
        try:
            self.history_file.parent.mkdir(parents=True, exist_ok=True)
            if self.history_file.exists():
                readline.read_history_file(str(self.history_file))
        except OSError as e:
            logger.debug("Could not load input history: %s", e)

        readline.set_history_length(1000)
        atexit.register(self._save_history)

    def _save_history(self) -> None:
        if readline is None or self.history_file is None:
            return
        try:
            readline.write_history_file(str(self.history_file))
        except OSError as e:
            logger.debug("Could not save input history: %s", e)

    # -------------------------------------------------------------------------
    # Loop
    # -------------------------------------------------------------------------

    def run(self) -> None:
        """Run the REPL loop until /exit, end of input or Ctrl-C."""
        self.console.banner(self.config.ollama.endpoint, self.config.ollama.model, self.session.id)

        if not self.provider.connect():
            self.console.warning(
                f"Cannot reach Ollama at {self.config.ollama.endpoint}. "
                "Start it with `ollama serve`; messages will fail until it is up."
            )
        print()

        try:
            while True:
                print(user_prompt_marker())
                line = self.console.input_fn("> ")
                self._handle_input(line)
        except KeyboardInterrupt:
            print()
        except EOFError:
            pass
        finally:
            self._final_save()

        print("Goodbye.")

    def _final_save(self) -> None:
        if not self.session.messages:
            return
        if self.router.save_session():
            print(dim(f"Session saved: {self.session.id}"))

    def _handle_input(self, line: str) -> None:
        """Route input based on classification."""
        input_type = self.classifier.classify(line)

        if input_type == InputType.EMPTY:
            return
        if input_type == InputType.COMMAND:
            self._handle_command(line)
            return

        self.router.handle(line.strip())
        self._discard_typeahead()

    def _discard_typeahead(self) -> None:
        """Drop lines typed while the reply was streaming."""
        if not hasattr(sys.stdin, "isatty") or not sys.stdin.isatty():
            return

        dropped = 0
        try:
            if os.name == "nt":
                import msvcrt

                while msvcrt.kbhit():
                    if msvcrt.getwch() in ("\r", "\n"):
                        dropped += 1
            else:
                import select

                while select.select([sys.stdin], [], [], 0)[0]:
                    if not sys.stdin.readline():
                        break
                    dropped += 1
        except (OSError, ValueError) as e:
            logger.debug("Could not check for pending input: %s", e)

        if dropped:
            self.console.warning(f"Ignored {dropped} line(s) typed while the reply was in progress.")

    def _handle_command(self, line: str) -> None:
        """Handle slash commands."""
        cmd, args = self.classifier.extract_command(line)

        commands = {
            "help": self._cmd_help,
            "quit": self._cmd_quit,
            "exit": self._cmd_quit,
            "clear": self._cmd_clear,
            "save": self._cmd_save,
            "history": self._cmd_history,
            "models": self._cmd_models,
            "config": self._cmd_config,
            "read": self._cmd_read,
            "write": self._cmd_write,
            "edit": self._cmd_edit,
            "delete": self._cmd_delete,
            "doc": self._cmd_doc,
            "search": self._cmd_search,
            "convert": self._cmd_convert,
        }

        if cmd not in commands:
            self.console.warning(f"Unknown command: /{cmd}. Type /help for available commands.")
            return

        try:
            commands[cmd](args)
        except (EOFError, KeyboardInterrupt):
            raise
        except Exception as e:
            logger.exception("Command /%s failed", cmd)
            self.console.error(f"/{cmd} failed: {e}")

    # -------------------------------------------------------------------------
    # Session commands
    # -------------------------------------------------------------------------

    def _cmd_help(self, args: str) -> None:
        print(HELP_TEXT)

    def _cmd_quit(self, args: str) -> None:
        """Exit the REPL."""
        raise EOFError()

    def _cmd_clear(self, args: str) -> None:
        self.session.clear()
        self.console.success("Chat history cleared.")

    def _cmd_save(self, args: str) -> None:
        if self.router.save_session():
            self.console.success(f"Session saved: {self.session.id}")

    def _cmd_history(self, args: str) -> None:
        """Current session, or saved sessions with --list/--show/--delete/--clear/--export."""
        parts = args.split()
        if not parts:
            if not self.session.messages:
                print("No conversation history.")
                return
            print(format_session(self.session, max_chars=200))
            return

        flag, rest = parts[0], parts[1:]
        store = self.session_store
        try:
            if flag == "--list":
                print(format_session_list(store.list_sessions()))
            elif flag == "--clear":
                count = store.clear()
                self.console.success(f"Deleted {count} session(s)")
            elif flag in ("--show", "--delete", "--export") and rest:
                session_id = rest[0]
                if flag == "--show":
                    print(format_session(store.load(session_id)))
                elif flag == "--delete":
                    if store.delete(session_id):
                        self.console.success(f"Deleted session {session_id}")
                    else:
                        self.console.warning(f"Session not found: {session_id}")
                else:
                    output = None
                    if len(rest) >= 3 and rest[1] in ("-o", "--output"):
                        output = Path(rest[2])
                    path = store.export_markdown(session_id, output)
                    self.console.success(f"Exported to {path}")
            else:
                self.console.warning(
                    "Usage: /history [--list | --show ID | --delete ID | --clear | --export ID [-o DIR]]"
                )
        except (FileNotFoundError, ValueError) as e:
            self.console.error(str(e))

    def _cmd_models(self, args: str) -> None:
        try:
            models = self.provider.list_models()
        except LinkError as e:
            self.console.error(f"Failed to fetch models: {e.message}", e.suggestion)
            return
        self.console.models(models, self.config.ollama.model)

    def _cmd_config(self, args: str) -> None:
        print(self.config.show_config_info())

    # -------------------------------------------------------------------------
    # File commands
    # -------------------------------------------------------------------------

    def _cmd_read(self, args: str) -> None:
        path = args.strip()
        if not path:
            self.console.warning("Usage: /read <path>")
            return
        try:
            content = self.store.read(path)
        except FileOperationError as e:
            self.console.error(e.message)
            return
        print(dim(f"--- {path} ({len(content.splitlines())} lines) ---"))
        print(content)

    def _cmd_write(self, args: str) -> None:
        parts = args.split(maxsplit=1)
        if len(parts) < 2:
            self.console.warning("Usage: /write <path> <content>")
            return
        self.console.file_result(self.store.write(parts[0], parts[1]))

    def _cmd_edit(self, args: str) -> None:
        parts = args.split(maxsplit=2)
        if not parts:
            self.console.warning("Usage: /edit <path> [line] [content]")
            return

        path = parts[0]
        if len(parts) == 1:
            info = self.store.get_info(path)
            if not info.exists:
                self.console.error(f"File not found: {path}")
                return
            modified = info.last_modified.strftime("%Y-%m-%d %H:%M:%S") if info.last_modified else "unknown"
            perms = "".join(
                flag if allowed else "-"
                for flag, allowed in (
                    ("r", info.permissions.readable),
                    ("w", info.permissions.writable),
                    ("x", info.permissions.executable),
                )
            )
            print(f"{path}: {info.size} bytes, modified {modified}, {perms}")
            return

        if len(parts) < 3 or not parts[1].isdigit():
            self.console.warning("Usage: /edit <path> <line> <content>")
            return
        self.console.file_result(self.store.replace_line(path, int(parts[1]), parts[2]))

    def _cmd_delete(self, args: str) -> None:
        path = args.strip()
        if not path:
            self.console.warning("Usage: /delete <path>")
            return
        self.console.file_result(self.store.delete(path, backup=True))

    # -------------------------------------------------------------------------
    # Document commands
    # -------------------------------------------------------------------------

    def _cmd_doc(self, args: str) -> None:
        parts = args.split(maxsplit=2)
        if len(parts) < 2 or parts[0] not in ("read", "write", "info"):
            self.console.warning("Usage: /doc <read|write|info> <path> [content]")
            return

        action, path = parts[0], parts[1]
        if action == "read":
            result = self.documents.read(path)
            if not result.success:
                self.console.error(result.error)
                return
            meta = result.metadata
            print(dim(f"[{meta.format}] {path} - {meta.size} bytes"))
            if isinstance(result.content, (MarkdownDocument, StructuredData)) and meta.structure:
                print(dim(f"Structure: {meta.structure}"))
            print(render_document(result.content))
        elif action == "write":
            if len(parts) < 3:
                self.console.warning("Usage: /doc write <path> <content>")
                return
            content = parts[2]
            if detect_format(path) in ("json", "yaml"):
                content = parse_value(content)
            result = self.documents.write(path, content)
            if result.success:
                self.console.success(result.message)
            else:
                self.console.error(result.error)
        else:
            result = self.documents.get_info(path)
            if not result.success:
                self.console.error(result.error)
                return
            meta = result.metadata
            modified = meta.last_modified.strftime("%Y-%m-%d %H:%M:%S") if meta.last_modified else "unknown"
            print(f"{path}: format {meta.format}, {meta.size} bytes, modified {modified}")

    def _cmd_search(self, args: str) -> None:
        parts = args.split(maxsplit=1)
        if len(parts) < 2:
            self.console.warning("Usage: /search <path> <query>")
            return
        result = self.documents.search(parts[0], parts[1])
        if not result.success:
            self.console.error(result.error)
            return
        print(result.message)
        for match in result.content:
            print(f"  {dim(str(match.line).rjust(4))}: {match.text}")

    def _cmd_convert(self, args: str) -> None:
        parts = args.split()
        if len(parts) < 2:
            self.console.warning("Usage: /convert <src> <dst> [format]")
            return
        result = self.documents.convert(parts[0], parts[1], parts[2] if len(parts) > 2 else None)
        if result.success:
            self.console.success(result.message)
        else:
            self.console.error(result.error)


# =============================================================================
# Click commands
# =============================================================================

def _load_config(ctx: click.Context, debug: bool = False) -> Config:
    """Load configuration or exit with status 1."""
    try:
        return Config.load(ctx.obj.get("config_path"), debug=debug)
    except ConfigurationError as e:
        click.echo(red(f"Configuration error: {e.format_message()}"), err=True)
        ctx.exit(1)


@click.group(invoke_without_command=True)
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path),
              help="Use this config file instead of the discovered one")
@click.option("--version", "-v", is_flag=True, help="Show version and exit")
@click.pass_context
def cli(ctx, config_path, version):
    """link-chat: chat with a local Ollama model about your code.

    \b
    USAGE:
      link                 Start the interactive chat (default)
      link chat [OPTS]     Start the chat with overrides
      link config          Show or change configuration
      link models          List, pull or remove models
      link history         Manage saved sessions
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path

    if version:
        click.echo(f"link-chat v{__version__}")
        ctx.exit()

    if ctx.invoked_subcommand is None:
        ctx.invoke(chat)


@cli.command("chat")
@click.option("--model", "-m", type=str, help="Model name, e.g. llama3")
@click.option("--endpoint", "-e", type=str, help="Ollama server URL")
@click.option("--verbose", is_flag=True, help="Log to stderr")
@click.pass_context
def chat(ctx, model=None, endpoint=None, verbose=False):
    """Start an interactive chat session."""
    config = _load_config(ctx, debug=verbose)
    try:
        if model:
            config.set("ollama.model", model, save=False)
        if endpoint:
            config.set("ollama.endpoint", endpoint, save=False)
    except ConfigurationError as e:
        click.echo(red(e.format_message()), err=True)
        ctx.exit(1)

    configure_logging(logs_dir(), verbose=verbose or config.debug)

    provider = OllamaProvider.from_config(config)
    try:
        LinkREPL(config, provider).run()
    finally:
        provider.close()


@cli.command("config")
@click.option("--list", "list_", is_flag=True, help="Show all settings")
@click.option("--get", "get_key", metavar="KEY", help="Show one setting, e.g. ollama.model")
@click.option("--set", "set_pair", metavar="KEY=VALUE", help="Change one setting")
@click.option("--reset", is_flag=True, help="Restore defaults")
@click.pass_context
def config_cmd(ctx, list_, get_key, set_pair, reset):
    """Show or change configuration.

    \b
    EXAMPLES:
      link config --list
      link config --get ollama.model
      link config --set ollama.model=llama3
      link config --set ollama.temperature=0.2
      link config --reset
    """
    if reset:
        path = ctx.obj.get("config_path") or find_local_config() or global_config_path()
        config = Config()
        config.save(path)
        click.echo(green(f"Configuration reset to defaults: {path}"))
        return

    config = _load_config(ctx)

    try:
        if set_pair:
            key, sep, raw = set_pair.partition("=")
            if not sep or not key.strip():
                click.echo(red("Expected KEY=VALUE, e.g. ollama.model=llama3"), err=True)
                ctx.exit(1)
            config.set(key.strip(), parse_value(raw.strip()))
            click.echo(green(f"{key.strip()} = {config.get(key.strip())!r}"))
            return

        if get_key:
            value = config.get(get_key)
            if isinstance(value, dict):
                for name, item in value.items():
                    click.echo(f"{name} = {item!r}")
            else:
                click.echo(f"{value!r}" if not isinstance(value, str) else value)
            return
    except ConfigurationError as e:
        click.echo(red(e.format_message()), err=True)
        ctx.exit(1)

    click.echo(config.show_config_info())


@cli.command("models")
@click.option("--list", "list_", is_flag=True, help="List installed models (default)")
@click.option("--pull", metavar="NAME", help="Download a model")
@click.option("--remove", metavar="NAME", help="Delete a model")
@click.pass_context
def models_cmd(ctx, list_, pull, remove):
    """List, pull or remove models on the Ollama server."""
    config = _load_config(ctx)
    provider = OllamaProvider.from_config(config)
    try:
        if pull:
            click.echo(f"Pulling {pull} (this can take a while)...")
            status = provider.pull_model(pull)
            click.echo(green(f"Pulled {pull}: {status}"))
        elif remove:
            provider.delete_model(remove)
            click.echo(green(f"Removed {remove}"))
        else:
            Console().models(provider.list_models(), config.ollama.model)
    except LinkError as e:
        click.echo(red(e.format_message()), err=True)
        ctx.exit(1)
    finally:
        provider.close()


@cli.command("history")
@click.option("--list", "list_", is_flag=True, help="List saved sessions (default)")
@click.option("--show", metavar="ID", help="Print a session")
@click.option("--delete", metavar="ID", help="Delete a session")
@click.option("--clear", is_flag=True, help="Delete every session")
@click.option("--export", "export_id", metavar="ID", help="Export a session as Markdown")
@click.option("--output", "-o", type=click.Path(file_okay=False, path_type=Path),
              help="Directory for --export (default: current directory)")
@click.pass_context
def history_cmd(ctx, list_, show, delete, clear, export_id, output):
    """Manage saved chat sessions."""
    store = SessionStore(sessions_dir())

    try:
        if show:
            click.echo(format_session(store.load(show)))
        elif delete:
            if store.delete(delete):
                click.echo(green(f"Deleted session {delete}"))
            else:
                click.echo(yellow(f"Session not found: {delete}"))
        elif clear:
            count = store.clear()
            click.echo(green(f"Deleted {count} session(s)"))
        elif export_id:
            path = store.export_markdown(export_id, output)
            click.echo(green(f"Exported to {path}"))
        else:
            click.echo(format_session_list(store.list_sessions()))
    except (FileNotFoundError, ValueError) as e:
        click.echo(red(str(e)), err=True)
        ctx.exit(1)


def main():
    """Entry point for the link command."""
    cli(obj={})


if __name__ == "__main__":
    main()
