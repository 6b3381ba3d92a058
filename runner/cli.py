"""CLI interface for running and testing code."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from pydantic import ValidationError

from codegen import generate_harness, resolve_function_name, supported_languages
from runner.facade import Runner
from runner.runners import HTML_EXTENSIONS, SCRIPT_EXTENSIONS
from runner_core.config import EngineConfig, load_config
from runner_core.languages import load_language_table
from runner_core.schemas import LogType, TestCase

app = typer.Typer(help="Polyglot code runner CLI")

SKIPPED_DIRS = {".git", "node_modules", "__pycache__", ".venv"}

_LOG_COLORS = {
    "log": None,
    "info": typer.colors.BLUE,
    "warn": typer.colors.YELLOW,
    "error": typer.colors.RED,
}


def load_files(root: Path) -> dict[str, str]:
    """Read every text file under ``root`` into a virtual file map keyed by POSIX relative path."""
    files: dict[str, str] = {}
    for path in sorted(root.rglob("*")):
        if not path.is_file() or SKIPPED_DIRS.intersection(path.relative_to(root).parts):
            continue
        try:
            files[path.relative_to(root).as_posix()] = path.read_text(encoding="utf-8")
        except UnicodeDecodeError:
            continue
    return files


def load_cases(cases_path: Path) -> list[TestCase]:
    """Load test cases from a YAML or JSON file: a list, or a mapping with a ``cases`` list.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the content is not a list of test cases
    """
    if not cases_path.exists():
        raise FileNotFoundError(f"Cases file not found: {cases_path}")

    with open(cases_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)

    if isinstance(data, dict):
        data = data.get("cases")
    if not isinstance(data, list):
        raise ValueError(f"Expected a list of test cases in {cases_path}")
    try:
        return [TestCase.from_dict(_scalar_name_as_text(item)) for item in data]
    except ValidationError as e:
        raise ValueError(f"Invalid test case in {cases_path}: {e}") from e


def _scalar_name_as_text(item: Any) -> Any:
    # YAML reads unquoted names such as 3, yes or off as numbers and booleans
    if isinstance(item, dict) and isinstance(item.get("name"), (bool, int, float)):
        return {**item, "name": str(item["name"])}
    return item


def _resolve_entry(entry: str, root: Optional[str]) -> tuple[Path, str]:
    entry_path = Path(entry)
    if root is None:
        return entry_path.parent, entry_path.name
    root_path = Path(root)
    if entry_path.is_absolute() or entry_path.exists():
        try:
            return root_path, entry_path.resolve().relative_to(root_path.resolve()).as_posix()
        except ValueError:
            pass
    return root_path, entry_path.as_posix()


def _load_engine_config(config_path: Optional[str]) -> EngineConfig:
    if config_path is None:
        return EngineConfig()
    try:
        return load_config(config_path)
    except FileNotFoundError as e:
        typer.secho(f"❌ Config file not found: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except ValueError as e:
        typer.secho(f"❌ Invalid config: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _print_log(log_type: LogType, content: list[object]) -> None:
    text = " ".join(item if isinstance(item, str) else json.dumps(item) for item in content)
    typer.secho(text, fg=_LOG_COLORS.get(log_type), err=log_type in ("error", "warn"))


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def run(
    entry: str = typer.Argument(..., help="Entry file to run"),
    root: Optional[str] = typer.Option(None, help="Project root loaded as the virtual file map"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to engine YAML config"),
    render_out: Optional[str] = typer.Option(None, "--render-out", help="Write a rendered HTML page here"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run a file and stream its console output."""
    _configure_logging(verbose)
    config = _load_engine_config(config_path)
    root_path, entry_key = _resolve_entry(entry, root)
    files = load_files(root_path)
    if entry_key not in files:
        typer.secho(f"❌ Entry file not found: {entry_key}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    def _on_render(html: str) -> None:
        if render_out is None:
            typer.secho("🖼  Render output produced (use --render-out to save it)", fg=typer.colors.BLUE)
            return
        Path(render_out).write_text(html, encoding="utf-8")
        typer.secho(f"🖼  Rendered page written to {render_out}", fg=typer.colors.BLUE)

    result = Runner(config).run(files, entry_key, on_log=_print_log, on_render=_on_render)
    if result.error:
        typer.secho(f"\n❌ {result.error} ({result.duration_ms:.0f} ms)", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.secho(f"\n✅ Finished in {result.duration_ms:.0f} ms", fg=typer.colors.GREEN)


@app.command()
def test(
    entry: str = typer.Argument(..., help="Entry file containing the function under test"),
    cases: str = typer.Option(..., "--cases", help="YAML or JSON file with test cases"),
    function: str = typer.Option(..., "--function", help="Name of the function to call"),
    root: Optional[str] = typer.Option(None, help="Project root loaded as the virtual file map"),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to engine YAML config"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    """Run test cases against a single function."""
    _configure_logging(verbose)
    config = _load_engine_config(config_path)
    try:
        test_cases = load_cases(Path(cases))
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    root_path, entry_key = _resolve_entry(entry, root)
    files = load_files(root_path)
    report = Runner(config).run_tests(files, entry_key, function, test_cases, on_log=_print_log)

    if not report.results:
        typer.secho("\n⚠️  No test results", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(1)

    typer.secho(f"\n📊 {len(report.results)} test case(s):\n", fg=typer.colors.BLUE)
    for result in report.results:
        mark = "✓" if result.passed else "✗"
        color = typer.colors.GREEN if result.passed else typer.colors.RED
        typer.secho(f"  {mark} {result.name}", fg=color)
        if not result.passed:
            typer.echo(f"      expected: {json.dumps(result.expected)}")
            typer.echo(f"      actual:   {json.dumps(result.actual)}")

    passed = sum(1 for result in report.results if result.passed)
    if report.all_passed:
        typer.secho(f"\n✅ All {passed} test case(s) passed", fg=typer.colors.GREEN)
        return
    typer.secho(f"\n❌ {passed}/{len(report.results)} test case(s) passed", fg=typer.colors.RED, err=True)
    raise typer.Exit(1)


@app.command()
def harness(
    language: str = typer.Argument(..., help="File extension of the target language, e.g. java"),
    source: str = typer.Argument(..., help="Source file containing the function"),
    cases: str = typer.Option(..., "--cases", help="YAML or JSON file with test cases"),
    function: str = typer.Option(..., "--function", help="Name of the function to call"),
) -> None:
    """Print the generated test driver program."""
    source_path = Path(source)
    if not source_path.exists():
        typer.secho(f"❌ Source file not found: {source}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    try:
        test_cases = load_cases(Path(cases))
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"❌ {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    user_source = source_path.read_text(encoding="utf-8")
    function_name = resolve_function_name(language, user_source, function)
    program = generate_harness(language, user_source, function_name, test_cases)
    if program is None:
        typer.secho(f"⚠️  No harness generator for '{language}'", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(1)
    typer.echo(program)


@app.command()
def languages(
    languages_path: Optional[str] = typer.Option(None, "--table", help="Alternative language table YAML"),
) -> None:
    """List the language table and which languages can run test cases."""
    table = load_language_table(languages_path)
    generators = set(supported_languages())
    local = {*SCRIPT_EXTENSIONS, *HTML_EXTENSIONS, "sql", "py"}

    typer.secho(f"\n📁 {len(table)} language(s):\n", fg=typer.colors.BLUE)
    for extension, config in sorted(table.items()):
        if extension in local:
            where = "local"
        elif config.remote_capable:
            where = f"remote {config.runtime_id} {config.runtime_version}"
        else:
            where = "editor only"
        tests = "✓" if extension in generators or extension in SCRIPT_EXTENSIONS else "✗"
        typer.echo(f"  {extension:<6} {config.name:<18} {where:<32} Tests: {tests}")


if __name__ == "__main__":
    app()
