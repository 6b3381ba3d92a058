import shutil
import subprocess
import sys

import pytest

from codegen import END_MARKER, START_MARKER, generate_harness, supported_languages
from runner.results import extract_results, reconcile_results
from runner_core.schemas import TestCase

SOURCES = {
    "py": "def add(a, b):\n    return a + b\n",
    "java": "public class Solution {\n    public static int add(int a, int b) { return a + b; }\n}\n",
    "cpp": "int add(int a, int b) { return a + b; }\n",
    "cs": "public class Solution {\n    public static int add(int a, int b) { return a + b; }\n}\n",
    "go": "package main\n\nfunc add(a int, b int) int { return a + b }\n",
    "rs": "fn add(a: i32, b: i32) -> i32 { a + b }\n",
    "kt": "fun add(a: Int, b: Int): Int = a + b\n",
    "swift": "func add(_ a: Int, _ b: Int) -> Int { return a + b }\n",
    "rb": "def add(a, b)\n  a + b\nend\n",
    "php": "<?php\nfunction add($a, $b) { return $a + $b; }\n",
    "lua": "function add(a, b)\n  return a + b\nend\n",
    "r": "add <- function(a, b) {\n  a + b\n}\n",
}


def _cases() -> list[TestCase]:
    return [
        TestCase(name="small", input=[1, 2], expected=3),
        TestCase(name="negative", input=[-4, 1], expected=-3),
    ]


def test_every_generator_has_a_sample() -> None:
    assert sorted(SOURCES) == supported_languages()


@pytest.mark.parametrize("language", sorted(SOURCES))
def test_harness_contains_source_markers_and_call(language: str) -> None:
    program = generate_harness(language, SOURCES[language], "add", _cases())

    assert program is not None
    assert START_MARKER in program
    assert END_MARKER in program
    assert "add" in program
    # user code must survive, apart from a leading php tag or go package line
    body = SOURCES[language].replace("<?php\n", "").replace("package main\n", "").strip()
    assert body.splitlines()[-1].strip() in program


def test_unknown_language_has_no_generator() -> None:
    assert generate_harness("cobol", "", "add", _cases()) is None
    assert generate_harness("js", "function add() {}", "add", _cases()) is None


def _run(command: list[str], program: str, suffix: str, tmp_path) -> str:
    path = tmp_path / f"main.{suffix}"
    path.write_text(program, encoding="utf-8")
    completed = subprocess.run(command + [str(path)], capture_output=True, text=True, timeout=30)
    return completed.stdout


def test_python_harness_runs(tmp_path) -> None:
    source = "def pair(a, b):\n    if a < 0:\n        raise ValueError('negative')\n    return [a, b / 2]\n"
    cases = [
        TestCase(name="ok", input=[1, 4], expected=[1, 2]),
        TestCase(name="wrong", input=[1, 4], expected=[1, 3]),
        TestCase(name="raises", input=[-1, 0], expected=None),
    ]
    program = generate_harness("py", source, "pair", cases)

    stdout = _run([sys.executable], program, "py", tmp_path)
    results = extract_results(stdout)

    assert results is not None
    results = reconcile_results(results)
    assert [result.name for result in results] == ["ok", "wrong", "raises"]
    assert [result.passed for result in results] == [True, False, False]
    assert results[0].actual == [1, 2.0]
    assert results[2].error is True
    assert "negative" in results[2].actual


@pytest.mark.parametrize(("language", "binary"), [("rb", "ruby"), ("php", "php"), ("lua", "lua")])
def test_interpreted_harness_runs(language: str, binary: str, tmp_path) -> None:
    if shutil.which(binary) is None:
        pytest.skip(f"{binary} not installed")
    program = generate_harness(language, SOURCES[language], "add", _cases())

    results = extract_results(_run([binary], program, language, tmp_path))

    assert results is not None
    assert [result.passed for result in results] == [True, True]


IDENTITY_SOURCES = {
    "py": ("py", [sys.executable], "def identity(x):\n    return x\n"),
    "rb": ("rb", ["ruby"], "def identity(x)\n  x\nend\n"),
    "php": ("php", ["php"], "<?php\nfunction identity($x) { return $x; }\n"),
    "lua": ("lua", ["lua"], "function identity(x)\n  return x\nend\n"),
}


@pytest.mark.parametrize("language", sorted(IDENTITY_SOURCES))
def test_identity_round_trip(language: str, tmp_path) -> None:
    suffix, command, source = IDENTITY_SOURCES[language]
    if shutil.which(command[0]) is None:
        pytest.skip(f"{command[0]} not installed")
    cases = [TestCase(name="int", input=[7], expected=7), TestCase(name="text", input=['say "hi"'], expected='say "hi"')]

    results = extract_results(_run(command, generate_harness(language, source, "identity", cases), suffix, tmp_path))

    assert results is not None
    assert all(result.passed for result in results)


# (tools that must exist, build/run steps; {src} is the program file, {bin} an output stem)
TOOLCHAINS = {
    "go": (["go"], [["go", "run", "{src}"]]),
    "rs": (["rustc"], [["rustc", "{src}", "-o", "{bin}"], ["{bin}"]]),
    "cpp": (["g++"], [["g++", "-std=c++17", "{src}", "-o", "{bin}"], ["{bin}"]]),
    "cs": (["mcs", "mono"], [["mcs", "-out:{bin}.exe", "{src}"], ["mono", "{bin}.exe"]]),
    "java": (["java"], [["java", "{src}"]]),
    "kt": (["kotlinc", "java"], [["kotlinc", "{src}", "-include-runtime", "-d", "{bin}.jar"], ["java", "-jar", "{bin}.jar"]]),
    "swift": (["swift"], [["swift", "{src}"]]),
    "r": (["Rscript"], [["Rscript", "{src}"]]),
}

GRID_SOURCES = {
    "go": "package main\n\nfunc same(grid [][]int) [][]int {\n\treturn grid\n}\n",
    "rs": "fn same(grid: Vec<Vec<i32>>) -> Vec<Vec<i32>> {\n    grid\n}\n",
    "cpp": "std::vector<std::vector<int>> same(std::vector<std::vector<int>> grid) {\n    return grid;\n}\n",
    "cs": "public class Solution\n{\n    public static int[][] same(int[][] grid) { return grid; }\n}\n",
    "java": "public class Solution {\n    public static int[][] same(int[][] grid) { return grid; }\n}\n",
    "kt": "fun same(grid: Array<IntArray>): Array<IntArray> = grid\n",
    "swift": "func same(_ grid: [[Int]]) -> [[Int]] {\n    return grid\n}\n",
    "r": "same <- function(grid) {\n  grid\n}\n",
}

ECHO_SOURCES = {
    "go": 'package main\n\nfunc echo(label string) string {\n\tif label == "boom" {\n\t\tpanic("boom")\n\t}\n'
    "\treturn label\n}\n",
    "rs": 'fn echo(label: &str) -> String {\n    if label == "boom" {\n        panic!("boom");\n    }\n'
    "    label.to_string()\n}\n",
    "cpp": '#include <stdexcept>\n\nstd::string echo(std::string label) {\n    if (label == "boom") throw std::runtime_error("boom");\n'
    "    return label;\n}\n",
    "cs": "public class Solution\n{\n    public static string echo(string label)\n    {\n"
    '        if (label == "boom") throw new InvalidOperationException("boom");\n        return label;\n    }\n}\n',
    "java": "public class Solution {\n    public static String echo(String label) {\n"
    '        if (label.equals("boom")) throw new IllegalStateException("boom");\n        return label;\n    }\n}\n',
    "kt": 'fun echo(label: String): String {\n    if (label == "boom") throw IllegalStateException("boom")\n'
    "    return label\n}\n",
    "swift": "enum EchoError: Error {\n    case boom\n}\n\nfunc echo(_ label: String) throws -> String {\n"
    '    if label == "boom" { throw EchoError.boom }\n    return label\n}\n',
    "r": 'echo <- function(label) {\n  if (label == "boom") stop("boom")\n  label\n}\n',
}


def _build_and_run(language: str, program: str, tmp_path) -> str:
    tools, steps = TOOLCHAINS[language]
    missing = [tool for tool in tools if shutil.which(tool) is None]
    if missing:
        pytest.skip(f"{', '.join(missing)} not installed")
    source = tmp_path / f"main.{language}"
    source.write_text(program, encoding="utf-8")
    binary = tmp_path / "main"
    stdout = ""
    for step in steps:
        command = [part.format(src=source, bin=binary) for part in step]
        completed = subprocess.run(command, capture_output=True, text=True, timeout=300, cwd=tmp_path)
        assert completed.returncode == 0, completed.stderr
        stdout = completed.stdout
    return stdout


def test_every_compiled_language_has_a_toolchain_entry() -> None:
    assert set(TOOLCHAINS) == set(GRID_SOURCES) == set(ECHO_SOURCES)
    assert set(TOOLCHAINS) | {"py", "rb", "php", "lua"} == set(supported_languages())


@pytest.mark.parametrize("language", sorted(TOOLCHAINS))
def test_compiled_harness_returns_nested_int_array(language: str, tmp_path) -> None:
    cases = [TestCase(name="grid", input=[[[1, 2], [3, 4]]], expected=[[1, 2], [3, 4]])]
    program = generate_harness(language, GRID_SOURCES[language], "same", cases)

    results = extract_results(_build_and_run(language, program, tmp_path))

    assert results is not None
    results = reconcile_results(results)
    assert results[0].passed is True
    assert results[0].actual == [[1, 2], [3, 4]]


@pytest.mark.parametrize("language", sorted(TOOLCHAINS))
def test_compiled_harness_isolates_failing_case(language: str, tmp_path) -> None:
    cases = [
        TestCase(name='say "hi"', input=['say "hi"'], expected='say "hi"'),
        TestCase(name="boom", input=["boom"], expected="boom"),
        TestCase(name="after", input=["after"], expected="after"),
    ]
    program = generate_harness(language, ECHO_SOURCES[language], "echo", cases)

    results = extract_results(_build_and_run(language, program, tmp_path))

    assert results is not None
    results = reconcile_results(results)
    assert [result.name for result in results] == ['say "hi"', "boom", "after"]
    assert [result.passed for result in results] == [True, False, True]
    assert results[0].actual == 'say "hi"'
    assert results[1].error is True
    assert "boom" in str(results[1].actual)
