import json
import os

import pytest

from workshop.utils.avatars import TEAM_AVATAR_ICONS, select_random_avatar
from workshop.utils.phases import PhaseConfigError, load_phase_config, phase_title, progress_percentage
from workshop.utils.templates import compile_template, extract_variables, missing_required_fields


def test_simple_and_nested_placeholders():
    data = {"company_name": "Sunrise", "phase1": {"location": "Leeds"}}
    out = compile_template("{{company_name}} in {{phase1.location}}", data)
    assert out == "Sunrise in Leeds"


def test_upper_case_names_are_looked_up_lower_case():
    assert compile_template("Hi {{COMPANY_NAME}}", {"company_name": "Sunrise"}) == "Hi Sunrise"


def test_unknown_placeholders_are_left_intact():
    out = compile_template("{{known}} {{unknown}} {{phase4.idea}}", {"known": "yes"})
    assert out == "yes {{unknown}} {{phase4.idea}}"


def test_value_formatting():
    data = {"items": ["a", "b"], "flag": True, "empty": None, "n": 3}
    assert compile_template("{{items}}|{{flag}}|{{empty}}|{{n}}", data) == "a, b|true||3"


def test_if_else_blocks():
    template = "{{#if tone}}Tone: {{tone}}{{else}}Neutral{{/if}}."
    assert compile_template(template, {"tone": "playful"}) == "Tone: playful."
    assert compile_template(template, {"tone": ""}) == "Neutral."
    assert compile_template(template, {}) == "Neutral."


def test_if_equality_condition():
    template = "{{#if output_format == 'table'}}TABLE{{else}}LIST{{/if}}"
    assert compile_template(template, {"output_format": "table"}) == "TABLE"
    assert compile_template(template, {"output_format": "bullets"}) == "LIST"
    assert compile_template('{{#if phase1.x == "y"}}ok{{/if}}', {"phase1": {"x": "y"}}) == "ok"


def test_empty_template():
    assert compile_template("", {"a": 1}) == ""


def test_extract_variables_in_order():
    template = "{{#if tone == 'x'}}{{/if}}{{COMPANY_NAME}} {{phase1.location}} {{company_name}} {{tone}}"
    assert extract_variables(template) == ["tone", "company_name", "phase1.location"]


def test_missing_required_fields():
    config = {"fields": [
        {"id": "a", "required": True},
        {"id": "b", "required": True},
        {"id": "c"},
    ]}
    assert missing_required_fields(config, {"a": "  ", "b": "x"}) == ["a"]
    assert missing_required_fields(config, None) == ["a", "b"]


def test_load_phase_config_errors(tmp_path):
    with pytest.raises(PhaseConfigError, match="Phase not found"):
        load_phase_config(0, tmp_path)
    with pytest.raises(PhaseConfigError, match="Phase configuration not found"):
        load_phase_config(1, tmp_path)
    (tmp_path / "phase-1.json").write_text("{not json", encoding="utf-8")
    with pytest.raises(PhaseConfigError, match="Phase configuration not found"):
        load_phase_config(1, tmp_path)


def test_load_phase_config_reloads_changed_file(tmp_path):
    path = tmp_path / "phase-2.json"
    path.write_text(json.dumps({"phase": 2, "title": "Old"}), encoding="utf-8")
    assert load_phase_config(2, tmp_path)["title"] == "Old"
    path.write_text(json.dumps({"phase": 2, "title": "New"}), encoding="utf-8")
    st = path.stat()
    os.utime(path, (st.st_atime, st.st_mtime + 5))
    assert load_phase_config(2, tmp_path)["title"] == "New"


def test_phase_helpers():
    assert phase_title(1) == "Market & Competitor Research"
    assert phase_title(42) == "Unknown"
    assert progress_percentage(1) == 0.0
    assert progress_percentage(8) == 100.0
    assert progress_percentage(4) == 42.9


def test_avatar_selection_avoids_recent_icons():
    recent = TEAM_AVATAR_ICONS[:-1]
    assert select_random_avatar(recent) == TEAM_AVATAR_ICONS[-1]
    assert select_random_avatar(TEAM_AVATAR_ICONS) in TEAM_AVATAR_ICONS
    assert select_random_avatar() in TEAM_AVATAR_ICONS
