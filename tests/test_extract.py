"""Tests for path, code block and language extraction."""

import pytest

from linkchat.extract import (
    compile_keywords,
    contains_keyword,
    detect_language_from_content,
    extension_for_language,
    extract_code_blocks,
    extract_file_paths,
    has_fenced_block,
    is_language_match,
    looks_like_code,
    normalize_language,
)


class TestKeywords:
    """Tests for the bilingual keyword matcher."""

    def test_ascii_keyword_needs_word_boundary(self):
        """Test that short keywords do not fire inside longer words."""
        pattern = compile_keywords(["cr"])
        assert pattern.search("cr app.js")
        assert not pattern.search("create a file")

    def test_case_insensitive(self):
        """Test that matching ignores case."""
        assert contains_keyword("Please REVIEW this", ["review"])

    def test_cjk_keyword_matches_inside_text(self):
        """Test that CJK keywords match without word breaks."""
        assert contains_keyword("请帮我审查这段代码", ["审查"])

    def test_multi_word_keyword(self):
        """Test keywords containing spaces."""
        assert contains_keyword("how to deploy", ["how to"])
        assert not contains_keyword("however", ["how to"])

    def test_empty_text(self):
        """Test that empty text matches nothing."""
        assert contains_keyword("", ["review"]) is False


class TestExtractFilePaths:
    """Tests for extract_file_paths."""

    def test_allowlisted_name(self):
        """Test that a common project filename is found on its own."""
        assert extract_file_paths("cr app.js") == ["app.js"]

    def test_bare_unknown_name_is_not_a_path(self):
        """Test that a plain word with an extension is not treated as a path."""
        assert extract_file_paths("创建一个 hello.py 打印 hello world") == []

    def test_relative_and_nested_paths(self):
        """Test paths with directory components keep first-occurrence order."""
        paths = extract_file_paths("review src/utils/helpers.ts and ./main.py")
        assert paths == ["src/utils/helpers.ts", "./main.py"]

    def test_absolute_path(self):
        """Test an absolute path."""
        assert extract_file_paths("open /tmp/project/notes.md") == ["/tmp/project/notes.md"]

    def test_quoted_path(self):
        """Test a double-quoted filename."""
        assert extract_file_paths('update "notes.md" please') == ["notes.md"]

    def test_backtick_path(self):
        """Test a backtick-quoted filename."""
        assert extract_file_paths("look at `utils.ts` first") == ["utils.ts"]

    def test_allowlist_case_insensitive(self):
        """Test that allowlisted names match regardless of case."""
        assert extract_file_paths("fix the readme.md typo") == ["readme.md"]

    def test_no_duplicates(self):
        """Test that repeated mentions are reported once."""
        paths = extract_file_paths('fix "a.py" and `a.py` and "a.py"')
        assert paths == ["a.py"]

    def test_nested_allowlisted_name_not_repeated(self):
        """Test that app.js inside src/app.js is not reported separately."""
        assert extract_file_paths("cr src/app.js") == ["src/app.js"]

    def test_repeated_application_is_stable(self):
        """Test that extraction gives the same answer every time."""
        text = 'compare ./a.py with "b.json" and package.json'
        first = extract_file_paths(text)
        assert extract_file_paths(text) == first
        assert len(first) == len(set(first))

    def test_empty_text(self):
        """Test that empty text yields no paths."""
        assert extract_file_paths("") == []
        assert extract_file_paths("nothing to see here") == []


class TestExtractCodeBlocks:
    """Tests for extract_code_blocks."""

    def test_blocks_in_source_order(self):
        """Test that every fenced block is returned in order."""
        text = (
            "First:\n```python\nprint(1)\n```\n"
            "Then:\n```js\nconsole.log(2);\n```\n"
        )
        blocks = extract_code_blocks(text)
        assert [b.language for b in blocks] == ["python", "js"]
        assert blocks[0].content == "print(1)"
        assert blocks[1].content == "console.log(2);"

    def test_blank_lines_trimmed(self):
        """Test that leading and trailing blank lines are removed."""
        blocks = extract_code_blocks("```python\n\n\ndef f():\n    return 1\n\n```")
        assert blocks[0].content == "def f():\n    return 1"

    def test_inner_lines_untouched(self):
        """Test that trailing spaces inside a block survive (markdown line breaks)."""
        blocks = extract_code_blocks("```markdown\n\nfirst line  \nsecond line\n\n```")
        assert blocks[0].content == "first line  \nsecond line"

    def test_missing_language_defaults_to_text(self):
        """Test an untagged fence."""
        blocks = extract_code_blocks("```\nplain\n```")
        assert blocks[0].language == "text"

    def test_unfenced_code_becomes_one_block(self):
        """Test that code without fences is still recognised."""
        code = "def add(a, b):\n    return a + b\n"
        blocks = extract_code_blocks(code)
        assert len(blocks) == 1
        assert blocks[0].language == "python"
        assert blocks[0].content == "def add(a, b):\n    return a + b"

    def test_prose_has_no_blocks(self):
        """Test that ordinary prose yields nothing."""
        assert extract_code_blocks("Closures capture variables from the enclosing scope.") == []

    def test_line_count(self):
        """Test CodeBlock.line_count."""
        blocks = extract_code_blocks("```\na\nb\nc\n```")
        assert blocks[0].line_count == 3

    def test_has_fenced_block(self):
        """Test fence detection."""
        assert has_fenced_block("x\n```py\nprint()\n```")
        assert not has_fenced_block("no fences")

    def test_looks_like_code_needs_two_indicators(self):
        """Test that one code-ish line is not enough."""
        assert not looks_like_code("return home early")
        assert looks_like_code("const x = 1;\nreturn x;")


class TestDetectLanguage:
    """Tests for detect_language_from_content."""

    @pytest.mark.parametrize("content,expected", [
        ("import React from 'react';\nexport default App;", "javascript"),
        ("interface User {\n  name: string;\n}", "typescript"),
        ("from os import path\n", "python"),
        ("def main():\n    pass\n", "python"),
        ("#include <iostream>\nint main() { std::cout << 1; }", "cpp"),
        ("#include <stdio.h>\nint main(void) { return 0; }", "c"),
        ('{"name": "demo", "version": 1}', "json"),
        ("body {\n  color: red;\n}", "css"),
        ("<!DOCTYPE html>\n<html><body></body></html>", "html"),
        ("name: demo\nversion: 1\n", "yaml"),
        ("# Title\n\nSome text", "markdown"),
        ("#!/usr/bin/env python\nprint('hi')", "python"),
        ("package main\n\nfunc main() {}\n", "go"),
    ])
    def test_recognises_language(self, content, expected):
        """Test that each sample is recognised as its language."""
        assert detect_language_from_content(content) == expected

    def test_falls_back_to_hint(self):
        """Test that the utterance is consulted when content is inconclusive."""
        assert detect_language_from_content("just words", "write it in golang") == "go"

    def test_defaults_to_txt(self):
        """Test the final default."""
        assert detect_language_from_content("just words") == "txt"
        assert detect_language_from_content("") == "txt"


class TestLanguageTables:
    """Tests for language/extension helpers."""

    def test_is_language_match(self):
        """Test extension matching against a language."""
        assert is_language_match("python", "tools/x.py")
        assert is_language_match("js", "app.js")
        assert not is_language_match("python", "app.js")
        assert not is_language_match("python", "Makefile")

    def test_extension_for_language(self):
        """Test preferred extensions."""
        assert extension_for_language("typescript") == ".ts"
        assert extension_for_language("py") == ".py"
        assert extension_for_language("klingon") == ".txt"

    def test_normalize_language(self):
        """Test alias resolution."""
        assert normalize_language("JS") == "javascript"
        assert normalize_language("text") == "txt"
        assert normalize_language(None) == "txt"
