from codegen import resolve_function_name
from codegen.resolve import candidate_names


def test_requested_name_wins_when_declared() -> None:
    source = "def helper():\n    pass\n\ndef solve(x):\n    return helper()\n"

    assert resolve_function_name("py", source, "solve") == "solve"


def test_falls_back_to_first_declared_function() -> None:
    source = "def helper():\n    pass\n\ndef solve(x):\n    return x\n"

    assert resolve_function_name("py", source, "missing") == "helper"


def test_keeps_requested_name_when_nothing_is_declared() -> None:
    assert resolve_function_name("py", "x = 1\n", "solve") == "solve"


def test_script_declarations_in_source_order() -> None:
    source = "const add = (a, b) => a + b;\nfunction helper() {}\nlet twice = async x => x * 2;\n"

    assert candidate_names("js", source) == ["add", "helper", "twice"]


def test_java_skips_main_and_type_names() -> None:
    source = (
        "public class Solution {\n"
        "    public Solution() {}\n"
        "    public int twoSum(int[] nums) { return 0; }\n"
        "    public static void main(String[] args) {}\n"
        "}\n"
    )

    assert resolve_function_name("java", source, "solve") == "twoSum"
