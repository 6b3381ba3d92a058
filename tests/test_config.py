from pathlib import Path

import pytest

from runner_core.config import EngineConfig, load_config, save_config
from runner_core.languages import extension_of, get_language, load_language_table


def test_load_config_overrides_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "engine.yaml"
    config_path.write_text("sandbox_timeout_ms: 1500\nnode_binary: /opt/node/bin/node\n", encoding="utf-8")

    config = load_config(config_path)

    assert config.sandbox_timeout_ms == 1500
    assert config.node_binary == "/opt/node/bin/node"
    assert config.sandbox_memory_limit_mb == 256
    assert config.remote_timeout_s is None


def test_load_config_empty_file_gives_defaults(tmp_path: Path) -> None:
    config_path = tmp_path / "engine.yaml"
    config_path.write_text("", encoding="utf-8")

    assert load_config(config_path) == EngineConfig()


def test_load_config_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_load_config_rejects_invalid_values(tmp_path: Path) -> None:
    config_path = tmp_path / "engine.yaml"
    config_path.write_text("sandbox_timeout_ms: -5\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid configuration"):
        load_config(config_path)


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "engine.yaml"
    config_path.write_text("- 1\n- 2\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_config(config_path)


def test_save_and_reload_config(tmp_path: Path) -> None:
    config = EngineConfig(sandbox_timeout_ms=2500, remote_timeout_s=10.0)
    config_path = tmp_path / "nested" / "engine.yaml"

    save_config(config, config_path)

    assert load_config(config_path) == config


@pytest.mark.parametrize(
    ("filename", "expected"),
    [("main.py", "py"), ("src/App.TSX", "tsx"), ("archive.tar.gz", "gz"), ("Makefile", ""), ("dir.v2/file", "")],
)
def test_extension_of(filename: str, expected: str) -> None:
    assert extension_of(filename) == expected


def test_language_table_entries() -> None:
    table = load_language_table()

    assert {"js", "mjs", "ts", "tsx", "jsx", "py", "java", "rs", "go", "sql", "html"} <= set(table)
    assert table["java"].runtime_id == "java"
    assert table["java"].remote_capable is True
    assert table["sql"].remote_capable is False
    assert table["html"].remote_capable is False
    assert all(config.extension == extension for extension, config in table.items())


def test_language_table_is_read_only() -> None:
    table = load_language_table()

    with pytest.raises(TypeError):
        table["new"] = table["py"]  # type: ignore[index]


def test_get_language_is_case_insensitive() -> None:
    assert get_language("PY").name == "Python"
    assert get_language("nope") is None


def test_alternative_language_table(tmp_path: Path) -> None:
    table_path = tmp_path / "languages.yaml"
    table_path.write_text(
        "zig:\n  name: Zig\n  runtime_id: zig\n  runtime_version: 0.10\n  editor_language_id: zig\n",
        encoding="utf-8",
    )

    table = load_language_table(str(table_path))

    assert list(table) == ["zig"]
    assert table["zig"].runtime_version == "0.1"

