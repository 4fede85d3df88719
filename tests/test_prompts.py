from __future__ import annotations

import json
import os
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tyrant_bot.prompts.json_loader import load_prompt_json, merge_overrides  # noqa: E402
from tyrant_bot.prompts.persona import (  # noqa: E402
    build_classifier_user_prompt,
    build_persona_system_prompt,
    build_responder_user_prompt,
)

DEFAULTS = {"greeting": "hail", "modes": {"direct": "talk", "mock": "laugh"}, "lines": ["a", "b"]}


def test_merge_overrides_merges_nested_and_replaces_lists() -> None:
    merged = merge_overrides(DEFAULTS, {"modes": {"mock": "sneer"}, "lines": ["c"]})

    assert merged == {"greeting": "hail", "modes": {"direct": "talk", "mock": "sneer"}, "lines": ["c"]}
    assert DEFAULTS["modes"]["mock"] == "laugh"


def test_missing_override_file_returns_defaults_copy(tmp_path: Path) -> None:
    loaded = load_prompt_json("absent.json", DEFAULTS, data_dir=tmp_path)
    loaded["modes"]["direct"] = "changed"

    assert load_prompt_json("absent.json", DEFAULTS, data_dir=tmp_path)["modes"]["direct"] == "talk"


def test_override_file_is_reloaded_when_mtime_changes(tmp_path: Path) -> None:
    path = tmp_path / "persona.json"
    path.write_text(json.dumps({"greeting": "salute"}), encoding="utf-8")

    assert load_prompt_json("persona.json", DEFAULTS, data_dir=tmp_path)["greeting"] == "salute"

    path.write_text(json.dumps({"greeting": "kneel"}), encoding="utf-8")
    stat = path.stat()
    os.utime(path, ns=(stat.st_atime_ns, stat.st_mtime_ns + 1_000_000_000))

    assert load_prompt_json("persona.json", DEFAULTS, data_dir=tmp_path)["greeting"] == "kneel"


def test_broken_override_file_falls_back_to_defaults(tmp_path: Path) -> None:
    (tmp_path / "persona.json").write_text("{not json", encoding="utf-8")

    assert load_prompt_json("persona.json", DEFAULTS, data_dir=tmp_path) == DEFAULTS


def test_persona_prompts_render_names_and_memory() -> None:
    system = build_persona_system_prompt("Adolf")
    user = build_responder_user_prompt("hi", ["likes tea", "from oslo"], [], mode="defend", target="<@2>")

    assert "Adolf" in system
    assert "likes tea | from oslo" in user
    assert "none" in user
    assert "<@2>" in user
    assert build_classifier_user_prompt("you idiot", ["12", "34"]) == 'Message: "you idiot"\nMentions: ["12", "34"]'
