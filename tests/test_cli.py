from pathlib import Path

import pytest
from typer.testing import CliRunner

from codegen import START_MARKER
from runner.cli import app, load_cases, load_files

runner = CliRunner()

CASES_YAML = """
cases:
  - name: small
    input: [1, 2]
    expected: 3
  - name: zero
    input: [0, 0]
    expected: 0
"""


def _project(tmp_path: Path) -> Path:
    (tmp_path / "main.py").write_text("def add(a, b):\n    return a + b\n\nprint('loaded')\n", encoding="utf-8")
    (tmp_path / "cases.yaml").write_text(CASES_YAML, encoding="utf-8")
    return tmp_path


def test_load_files_skips_tooling_dirs(tmp_path: Path) -> None:
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "app.js").write_text("x", encoding="utf-8")
    (tmp_path / "node_modules" / "pkg").mkdir(parents=True)
    (tmp_path / "node_modules" / "pkg" / "index.js").write_text("y", encoding="utf-8")
    (tmp_path / "blob.bin").write_bytes(b"\xff\xfe\x00")

    assert load_files(tmp_path) == {"src/app.js": "x"}


def test_load_cases_accepts_plain_list(tmp_path: Path) -> None:
    path = tmp_path / "cases.json"
    path.write_text('[{"name": "a", "input": [1], "expected": 1}]', encoding="utf-8")

    cases = load_cases(path)

    assert [case.name for case in cases] == ["a"]


def test_load_cases_keeps_scalar_names_as_text(tmp_path: Path) -> None:
    path = tmp_path / "cases.yaml"
    path.write_text(
        "- name: 3\n  input: [1]\n  expected: 1\n- name: yes\n  input: [2]\n  expected: 2\n", encoding="utf-8"
    )

    cases = load_cases(path)

    assert [case.name for case in cases] == ["3", "True"]


def test_load_cases_rejects_other_shapes(tmp_path: Path) -> None:
    path = tmp_path / "cases.yaml"
    path.write_text("name: a\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Expected a list"):
        load_cases(path)


def test_languages_command() -> None:
    result = runner.invoke(app, ["languages"])

    assert result.exit_code == 0
    assert "Python" in result.output
    assert "remote java" in result.output


def test_harness_command(tmp_path: Path) -> None:
    project = _project(tmp_path)

    result = runner.invoke(
        app, ["harness", "py", str(project / "main.py"), "--cases", str(project / "cases.yaml"), "--function", "add"]
    )

    assert result.exit_code == 0
    assert START_MARKER in result.output
    assert "def add(a, b):" in result.output


def test_harness_command_unknown_language(tmp_path: Path) -> None:
    project = _project(tmp_path)

    result = runner.invoke(
        app, ["harness", "dart", str(project / "main.py"), "--cases", str(project / "cases.yaml"), "--function", "add"]
    )

    assert result.exit_code == 1


def test_run_command(tmp_path: Path) -> None:
    project = _project(tmp_path)

    result = runner.invoke(app, ["run", str(project / "main.py")])

    assert result.exit_code == 0
    assert "loaded" in result.output


def test_run_command_missing_entry(tmp_path: Path) -> None:
    result = runner.invoke(app, ["run", "nope.py", "--root", str(tmp_path)])

    assert result.exit_code == 1


def test_test_command(tmp_path: Path) -> None:
    project = _project(tmp_path)

    result = runner.invoke(
        app, ["test", str(project / "main.py"), "--cases", str(project / "cases.yaml"), "--function", "add"]
    )

    assert result.exit_code == 0
    assert "✓ small" in result.output
    assert "All 2 test case(s) passed" in result.output


def test_test_command_reports_failures(tmp_path: Path) -> None:
    project = _project(tmp_path)
    (project / "cases.yaml").write_text("- name: \"off\"\n  input: [1, 1]\n  expected: 3\n", encoding="utf-8")

    result = runner.invoke(
        app, ["test", str(project / "main.py"), "--cases", str(project / "cases.yaml"), "--function", "add"]
    )

    assert result.exit_code == 1
    assert "✗ off" in result.output
