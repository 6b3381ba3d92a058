import pytest

from codegen import encode
from runner_core.errors import HarnessUnsupported


@pytest.mark.parametrize(
    ("language", "value", "expected"),
    [
        ("java", [[1, 2], [3, 4]], "new int[][]{{1, 2}, {3, 4}}"),
        ("java", ["a", "b"], 'new String[]{"a", "b"}'),
        ("java", [1.5, 2], "new double[]{1.5d, 2.0d}"),
        ("java", [1, 2147483648], "new long[]{1L, 2147483648L}"),
        ("java", None, "null"),
        ("go", [[1, 2], [3, 4]], "[][]int{{1, 2}, {3, 4}}"),
        ("go", None, "nil"),
        ("cpp", [[1, 2], [3, 4]], "std::vector<std::vector<int>>{{1, 2}, {3, 4}}"),
        ("cpp", "hi", 'std::string("hi")'),
        ("cpp", 2147483648, "2147483648LL"),
        ("cpp", None, "nullptr"),
        ("cs", [[1, 2], [3, 4]], "new int[][] { new int[] { 1, 2 }, new int[] { 3, 4 } }"),
        ("rs", [[1, 2], [3, 4]], "vec![vec![1, 2], vec![3, 4]]"),
        ("rs", 1.5, "1.5f64"),
        ("rs", None, "None"),
        ("py", [True, None, "x", 2.5], "[True, None, 'x', 2.5]"),
        ("py", {"k": [1]}, "{'k': [1]}"),
        ("r", [1, 2], "c(1L, 2L)"),
        ("r", [[1], [2]], "list(c(1L), c(2L))"),
        ("r", [True, None], "list(TRUE, NULL)"),
        ("lua", [1, [2, None]], "{1, {2, nil}}"),
        ("rb", [1, "a", None], '[1, "a", nil]'),
        ("php", [1, False], "[1, false]"),
        ("js", {"a": [1, None]}, '{"a": [1, null]}'),
    ],
)
def test_encode_literals(language: str, value: object, expected: str) -> None:
    assert encode(language, value) == expected


def test_mixed_arrays_fall_back_to_dynamic_containers() -> None:
    assert encode("java", [1, "a"]) == 'new Object[]{1, "a"}'
    assert encode("go", [1, "a"]) == '[]interface{}{1, "a"}'
    assert encode("cs", [1, "a"]) == 'new object[] { 1, "a" }'


def test_string_escaping() -> None:
    text = 'say "hi"\n'
    assert encode("java", text) == '"say \\"hi\\"\\n"'
    assert encode("go", text) == '"say \\"hi\\"\\n"'
    assert encode("rb", "#{x}") == '"\\#{x}"'
    assert encode("php", "$x") == '"\\$x"'
    assert encode("kt", "$x") == '"\\$x"'


def test_integral_floats_encode_as_ints() -> None:
    assert encode("py", 3.0) == "3"
    assert encode("lua", [2.0]) == "{2}"


def test_non_finite_numbers_rejected() -> None:
    with pytest.raises(ValueError):
        encode("py", float("inf"))


def test_unknown_language_raises() -> None:
    with pytest.raises(HarnessUnsupported):
        encode("cobol", 1)
