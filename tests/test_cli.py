"""Tests for the click commands and the chat REPL."""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from linkchat import __version__
from linkchat.cli import LinkREPL, cli
from linkchat.config import Config
from linkchat.llm import ConnectionError, MockLLMProvider, ModelInfo
from linkchat.session import ChatSession, SessionStore
from linkchat.ui import Console
from linkchat.workspace import sessions_dir


def scripted(*lines):
    """Input function that replays lines, then signals end of input."""
    pending = list(lines)

    def read(prompt):
        if not pending:
            raise EOFError()
        return pending.pop(0)

    return read


@pytest.fixture
def runner():
    return CliRunner()


def make_repl(temp_dir, *lines, provider=None):
    return LinkREPL(
        Config(),
        provider or MockLLMProvider(),
        console=Console(input_fn=scripted(*lines)),
        session_store=SessionStore(temp_dir / ".sessions"),
        base_dir=temp_dir,
    )


# ============================================================================
# Click commands
# ============================================================================

class TestRootCommand:
    """Tests for the group options."""

    def test_version(self, runner):
        """Test --version."""
        result = runner.invoke(cli, ["--version"], obj={})
        assert result.exit_code == 0
        assert f"link-chat v{__version__}" in result.output

    def test_bad_config_exits(self, runner, temp_dir):
        """Test that an invalid config file stops with status 1."""
        path = temp_dir / "bad.toml"
        path.write_text("[ui]\ntheme = \"neon\"\n", encoding="utf-8")

        result = runner.invoke(cli, ["--config", str(path), "config"], obj={})

        assert result.exit_code == 1
        assert "Configuration error" in result.output


class TestConfigCommand:
    """Tests for link config."""

    def test_list(self, runner, config_file):
        """Test the full listing."""
        result = runner.invoke(cli, ["--config", str(config_file), "config", "--list"], obj={})
        assert result.exit_code == 0
        assert "[ollama]" in result.output
        assert 'model = "llama3"' in result.output

    def test_get(self, runner, config_file):
        """Test reading one value."""
        result = runner.invoke(cli, ["--config", str(config_file), "config", "--get", "ollama.model"], obj={})
        assert result.output.strip() == "llama3"

    def test_set_persists(self, runner, config_file):
        """Test that --set writes the file."""
        result = runner.invoke(
            cli, ["--config", str(config_file), "config", "--set", "ollama.temperature=0.5"], obj={}
        )

        assert result.exit_code == 0
        assert Config.load(config_file).ollama.temperature == 0.5

    def test_set_invalid_value(self, runner, config_file):
        """Test that validation errors exit 1 and leave the file alone."""
        before = config_file.read_text(encoding="utf-8")

        result = runner.invoke(
            cli, ["--config", str(config_file), "config", "--set", "ollama.temperature=5"], obj={}
        )

        assert result.exit_code == 1
        assert "between 0 and 1" in result.output
        assert config_file.read_text(encoding="utf-8") == before

    def test_set_requires_equals(self, runner, config_file):
        """Test a malformed pair."""
        result = runner.invoke(cli, ["--config", str(config_file), "config", "--set", "ollama.model"], obj={})
        assert result.exit_code == 1

    def test_reset(self, runner, config_file):
        """Test restoring defaults."""
        result = runner.invoke(cli, ["--config", str(config_file), "config", "--reset"], obj={})

        assert result.exit_code == 0
        assert Config.load(config_file).ollama.model == Config().ollama.model


class TestModelsCommand:
    """Tests for link models with a stubbed backend."""

    @pytest.fixture
    def provider(self):
        provider = MagicMock()
        provider.list_models.return_value = [ModelInfo(name="llama3", size=2048)]
        provider.pull_model.return_value = "success"
        with patch("linkchat.cli.OllamaProvider") as cls:
            cls.from_config.return_value = provider
            yield provider

    def test_list(self, runner, config_file, provider):
        """Test listing marks the configured model."""
        result = runner.invoke(cli, ["--config", str(config_file), "models"], obj={})

        assert result.exit_code == 0
        assert "llama3" in result.output
        assert "2.0 KB" in result.output
        provider.close.assert_called_once()

    def test_pull(self, runner, config_file, provider):
        """Test pulling a model."""
        result = runner.invoke(cli, ["--config", str(config_file), "models", "--pull", "qwen2"], obj={})

        provider.pull_model.assert_called_once_with("qwen2")
        assert "Pulled qwen2: success" in result.output

    def test_unreachable(self, runner, config_file, provider):
        """Test that backend errors exit 1 with a suggestion."""
        provider.list_models.side_effect = ConnectionError("Ollama", "refused")

        result = runner.invoke(cli, ["--config", str(config_file), "models"], obj={})

        assert result.exit_code == 1
        assert "ollama serve" in result.output


class TestHistoryCommand:
    """Tests for link history."""

    @pytest.fixture
    def saved(self):
        session = ChatSession(model="llama3")
        session.add("user", "What is a closure?")
        session.add("assistant", "A function with captured state.")
        SessionStore(sessions_dir()).save(session)
        return session

    def test_list(self, runner, saved):
        """Test listing saved sessions."""
        result = runner.invoke(cli, ["history"], obj={})
        assert saved.id in result.output

    def test_show(self, runner, saved):
        """Test printing one session."""
        result = runner.invoke(cli, ["history", "--show", saved.id], obj={})
        assert "A function with captured state." in result.output

    def test_show_missing(self, runner):
        """Test an unknown id."""
        result = runner.invoke(cli, ["history", "--show", "nope"], obj={})
        assert result.exit_code == 1

    def test_delete_outside_sessions_refused(self, runner, saved):
        """Test that a traversing id exits 1 and deletes nothing."""
        outside = sessions_dir().parent / "config.json"
        outside.write_text("{}", encoding="utf-8")

        result = runner.invoke(cli, ["history", "--delete", "../config"], obj={})

        assert result.exit_code == 1
        assert "Invalid session id" in result.output
        assert outside.exists()

    def test_export(self, runner, saved, temp_dir):
        """Test Markdown export to a chosen directory."""
        result = runner.invoke(cli, ["history", "--export", saved.id, "-o", str(temp_dir / "out")], obj={})

        assert result.exit_code == 0
        text = (temp_dir / "out" / f"session-{saved.id}.md").read_text(encoding="utf-8")
        assert "## User" in text
        assert "## Assistant" in text

    def test_delete_and_clear(self, runner, saved):
        """Test removing sessions."""
        assert "Deleted session" in runner.invoke(cli, ["history", "--delete", saved.id], obj={}).output
        assert "not found" in runner.invoke(cli, ["history", "--delete", saved.id], obj={}).output
        assert "Deleted 0 session(s)" in runner.invoke(cli, ["history", "--clear"], obj={}).output


# ============================================================================
# REPL
# ============================================================================

class TestREPL:
    """Tests for LinkREPL driven by scripted input."""

    def test_chat_then_exit(self, temp_dir, capsys):
        """Test a chat turn, the goodbye and the final session save."""
        provider = MockLLMProvider()
        provider.add_response("Hello from the model.")
        repl = make_repl(temp_dir, "hello", "/exit", provider=provider)

        repl.run()

        out = capsys.readouterr().out
        assert "Hello from the model." in out
        assert "Goodbye." in out
        assert (temp_dir / ".sessions" / f"{repl.session.id}.json").exists()

    def test_end_of_input_exits(self, temp_dir, capsys):
        """Test that EOF leaves the loop cleanly."""
        make_repl(temp_dir).run()
        assert "Goodbye." in capsys.readouterr().out

    def test_offline_warning(self, temp_dir, capsys):
        """Test the startup reachability check."""
        provider = MockLLMProvider()
        provider.available = False

        make_repl(temp_dir, provider=provider).run()

        assert "ollama serve" in capsys.readouterr().out

    def test_unknown_command(self, temp_dir, capsys):
        """Test an unrecognised slash command."""
        make_repl(temp_dir)._handle_input("/frobnicate")
        assert "Unknown command: /frobnicate" in capsys.readouterr().out

    def test_path_is_not_a_command(self, temp_dir):
        """Test that a leading absolute path goes to the model."""
        provider = MockLLMProvider()
        repl = make_repl(temp_dir, provider=provider)

        repl._handle_input("/src/app.js looks wrong")

        assert len(provider.calls) == 1

    def test_write_read_edit_delete(self, temp_dir, capsys):
        """Test the file commands end to end."""
        repl = make_repl(temp_dir)

        repl._handle_input("/write notes.txt first line")
        repl._handle_input("/edit notes.txt 1 changed line")
        repl._handle_input("/read notes.txt")
        assert (temp_dir / "notes.txt").read_text(encoding="utf-8") == "changed line"
        assert "changed line" in capsys.readouterr().out

        repl._handle_input("/delete notes.txt")
        assert not (temp_dir / "notes.txt").exists()
        assert list(temp_dir.glob("notes.txt.backup.*"))

    def test_read_missing(self, temp_dir, capsys):
        """Test a read error is shown, not raised."""
        make_repl(temp_dir)._handle_input("/read missing.txt")
        assert "File not found" in capsys.readouterr().out

    def test_doc_commands(self, temp_dir, capsys):
        """Test /doc write, /doc read, /search and /convert."""
        repl = make_repl(temp_dir)

        repl._handle_input('/doc write data.json {"name": "demo"}')
        repl._handle_input("/doc read data.json")
        repl._handle_input("/search data.json demo")
        repl._handle_input("/convert data.json data.yaml")

        out = capsys.readouterr().out
        assert '"name": "demo"' in out
        assert "Found 1 match(es)" in out
        assert (temp_dir / "data.yaml").read_text(encoding="utf-8") == "name: demo\n"

    def test_clear_and_history(self, temp_dir, capsys):
        """Test /history and /clear."""
        repl = make_repl(temp_dir)
        repl._handle_input("hi")
        repl._handle_input("/history")
        assert "[Mock] Received: hi" in capsys.readouterr().out

        repl._handle_input("/clear")
        assert repl.session.messages == []

    def test_history_export_saved_session(self, temp_dir):
        """Test /history --export writes one header per message."""
        repl = make_repl(temp_dir)
        session = ChatSession(model="llama3")
        session.add("user", "What is a closure?")
        session.add("assistant", "A function with captured state.")
        session.add("user", "Thanks")
        repl.session_store.save(session)

        repl._handle_input(f"/history --export {session.id} -o {temp_dir / 'out'}")

        text = (temp_dir / "out" / f"session-{session.id}.md").read_text(encoding="utf-8")
        headers = [line.split()[1] for line in text.splitlines() if line.startswith("## ")]
        assert headers == ["User", "Assistant", "User"]

    def test_history_saved_sessions(self, temp_dir, capsys):
        """Test /history --list, --show and --delete against the session store."""
        repl = make_repl(temp_dir)
        session = ChatSession(model="llama3")
        session.add("user", "What is a closure?")
        repl.session_store.save(session)

        repl._handle_input("/history --list")
        repl._handle_input(f"/history --show {session.id}")
        repl._handle_input(f"/history --delete {session.id}")

        out = capsys.readouterr().out
        assert session.id in out
        assert "What is a closure?" in out
        assert f"Deleted session {session.id}" in out
        assert repl.session_store.list_sessions() == []

    def test_history_bad_id_is_reported(self, temp_dir, capsys):
        """Test unknown and traversing ids print an error."""
        repl = make_repl(temp_dir)

        repl._handle_input("/history --show nope")
        repl._handle_input("/history --export ../config")

        out = capsys.readouterr().out
        assert "Session not found: nope" in out
        assert "Invalid session id" in out

    def test_history_usage(self, temp_dir, capsys):
        """Test an unknown /history flag prints usage."""
        make_repl(temp_dir)._handle_input("/history --bogus")
        assert "Usage: /history" in capsys.readouterr().out

    def test_models_command(self, temp_dir, capsys):
        """Test /models marks the active model."""
        repl = make_repl(temp_dir)
        repl._handle_input("/models")
        assert "mock-model" in capsys.readouterr().out

    def test_command_failure_is_contained(self, temp_dir, capsys):
        """Test that a crashing command does not end the session."""
        repl = make_repl(temp_dir)
        repl.store.read = MagicMock(side_effect=RuntimeError("boom"))

        repl._handle_input("/read anything.txt")

        assert "/read failed: boom" in capsys.readouterr().out
