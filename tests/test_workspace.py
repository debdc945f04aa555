"""Tests for user directories and project detection."""

import os

from linkchat.workspace import (
    detect_project_shape,
    find_local_config,
    global_config_path,
    logs_dir,
    sessions_dir,
    user_dir,
)


class TestUserDir:
    """Tests for per-user locations."""

    def test_under_home(self, clean_env):
        """Test the default location on POSIX systems."""
        if os.name == "nt":
            assert user_dir().name == "link-chat"
        else:
            assert user_dir() == clean_env / ".link-chat"

    def test_children(self):
        """Test derived paths."""
        assert global_config_path() == user_dir() / "config.toml"
        assert sessions_dir() == user_dir() / "sessions"
        assert logs_dir() == user_dir() / "logs"


class TestFindLocalConfig:
    """Tests for find_local_config."""

    def test_found_in_parent(self, temp_dir):
        """Test walking up from a nested directory."""
        config = temp_dir / ".link-chat" / "config.toml"
        config.parent.mkdir()
        config.write_text("", encoding="utf-8")
        nested = temp_dir / "a" / "b"
        nested.mkdir(parents=True)

        assert find_local_config(nested) == config.resolve()

    def test_not_found(self, temp_dir):
        """Test a directory tree without a config."""
        assert find_local_config(temp_dir) is None

    def test_global_config_is_not_local(self, clean_env):
        """Test that the home config is not mistaken for a project one."""
        global_config_path().parent.mkdir(parents=True)
        global_config_path().write_text("", encoding="utf-8")

        assert find_local_config(clean_env) is None


class TestProjectShape:
    """Tests for detect_project_shape."""

    def test_empty_directory(self, temp_dir):
        """Test a bare directory."""
        shape = detect_project_shape(temp_dir)
        assert shape.is_project is False
        assert shape.test_dir is None

    def test_node_project(self, temp_dir):
        """Test package.json, src/, test/ and docs/."""
        (temp_dir / "package.json").write_text("{}", encoding="utf-8")
        for name in ("src", "test", "docs"):
            (temp_dir / name).mkdir()

        shape = detect_project_shape(temp_dir)

        assert shape.has_package_json and shape.has_src and shape.has_docs
        assert shape.test_dir == "test"
        assert shape.is_project

    def test_tests_preferred_over_test(self, temp_dir):
        """Test the directory name order."""
        (temp_dir / "tests").mkdir()
        (temp_dir / "test").mkdir()
        assert detect_project_shape(temp_dir).test_dir == "tests"
