from __future__ import annotations

import json
import os
from pathlib import Path

import pytest

from glint.core.config import ConfigError, ConfigManager
from glint.core.config_loader import deep_merge, load_json_file, substitute_env_vars
from glint.core.config_schema import LSPConfig


def test_defaults_without_files(tmp_path: Path) -> None:
    config = ConfigManager.load(str(tmp_path))

    assert config.lsp.command is None
    assert config.lsp.settle_delay == pytest.approx(0.3)
    assert config.highlight.theme == "monokai"
    assert config.highlight.batch_threshold == 50


def test_project_jsonc_overrides_global(tmp_path: Path) -> None:
    global_dir = Path(os.environ["GLINT_CONFIG_DIR"])
    (global_dir / "glint.json").write_text(
        json.dumps({"highlight": {"theme": "friendly", "batchThreshold": 20}}),
        encoding="utf-8",
    )
    project = tmp_path / "project"
    nested = project / "src"
    nested.mkdir(parents=True)
    (project / "glint.jsonc").write_text(
        """
        {
          // closer files win
          "highlight": {"theme": "native"},
          "lsp": {"command": ["pylsp"], "settleDelayMs": 0}
        }
        """,
        encoding="utf-8",
    )

    manager = ConfigManager(str(nested))
    config = manager.get()

    assert config.highlight.theme == "native"
    assert config.highlight.batch_threshold == 20
    assert config.lsp.command == ["pylsp"]
    assert config.lsp.settle_delay == 0
    assert manager.sources == [str(global_dir / "glint.json"), str(project.resolve() / "glint.jsonc")]


def test_env_content_wins(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    (tmp_path / "glint.json").write_text(json.dumps({"lsp": {"disableWarning": False}}), encoding="utf-8")
    monkeypatch.setenv("GLINT_CONFIG_CONTENT", json.dumps({"lsp": {"disableWarning": True}}))

    assert ConfigManager.load(str(tmp_path)).lsp.disable_warning is True


@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
def test_bad_env_content_raises(monkeypatch: pytest.MonkeyPatch, tmp_path: Path, content: str) -> None:
    monkeypatch.setenv("GLINT_CONFIG_CONTENT", content)

    with pytest.raises(ConfigError) as exc_info:
        ConfigManager.load(str(tmp_path))
    assert exc_info.value.path == "GLINT_CONFIG_CONTENT"


def test_unknown_keys_are_rejected(tmp_path: Path) -> None:
    path = tmp_path / "glint.json"
    path.write_text(json.dumps({"lsp": {"commnd": ["pylsp"]}}), encoding="utf-8")

    with pytest.raises(ConfigError) as exc_info:
        ConfigManager.load(str(tmp_path))
    assert exc_info.value.path == str(path.resolve())


def test_unreadable_file_is_skipped(tmp_path: Path) -> None:
    path = tmp_path / "glint.json"
    path.write_text("{ broken", encoding="utf-8")

    assert load_json_file(path) == {}
    assert ConfigManager.load(str(tmp_path)).highlight.theme == "monokai"


def test_env_substitution(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GLINT_TEST_PORT", "2087")
    assert substitute_env_vars('{"socket": "localhost:{env:GLINT_TEST_PORT}"}') == '{"socket": "localhost:2087"}'
    assert substitute_env_vars("{env:GLINT_TEST_UNSET_VAR}") == ""


def test_deep_merge_keeps_siblings() -> None:
    merged = deep_merge({"lsp": {"command": ["a"], "env": {"X": "1"}}}, {"lsp": {"env": {"Y": "2"}}})
    assert merged == {"lsp": {"command": ["a"], "env": {"X": "1", "Y": "2"}}}


@pytest.mark.parametrize(
    "data",
    [
        {"command": ["pylsp"], "socket": "localhost:2087"},
        {"socket": "localhost"},
        {"socket": "localhost:port"},
    ],
)
def test_lsp_endpoint_validation(data: dict) -> None:
    with pytest.raises(ValueError):
        LSPConfig.model_validate(data)


def test_socket_address() -> None:
    assert LSPConfig(socket="127.0.0.1:2087").socket_address() == ("127.0.0.1", 2087)
