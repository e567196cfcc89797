"""Prompt template rendering for phase forms.

Phase configs carry a `promptTemplate` written in a small
Handlebars-like dialect:

- `{{company_name}}` substitutes a value from the current phase answers
- `{{phase1.company_name}}` reads an answer saved in another phase
- `{{COMPANY_NAME}}` is looked up as `company_name`
- `{{#if flag}}...{{else}}...{{/if}}` keeps one branch; the condition is
  either a variable name (truthiness) or `name == 'value'`

Placeholders that cannot be resolved are left untouched so participants
can see which answers are still missing.
"""

import re
from typing import Any, Dict, List, Optional

IF_BLOCK_RE = re.compile(r"\{\{#if\s+([^}]+)\}\}([\s\S]*?)(?:\{\{else\}\}([\s\S]*?))?\{\{/if\}\}")
PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)?)\s*\}\}")
EQUALITY_RE = re.compile(r"""^([A-Za-z0-9_.]+)\s*==\s*['"]([^'"]*)['"]$""")
UPPER_NAME_RE = re.compile(r"^[A-Z_]+$")

_MISSING = object()


def compile_template(template: str, data: Dict[str, Any]) -> str:
    """Render `template` against `data`."""
    if not template:
        return ''

    def _if_block(match: re.Match) -> str:
        condition, if_content, else_content = match.groups()
        if evaluate_condition(condition.strip(), data):
            return if_content or ''
        return else_content or ''

    result = IF_BLOCK_RE.sub(_if_block, template)

    def _placeholder(match: re.Match) -> str:
        value = _lookup(match.group(1), data)
        if value is _MISSING:
            return match.group(0)
        return _stringify(value)

    return PLACEHOLDER_RE.sub(_placeholder, result)


def evaluate_condition(condition: str, data: Dict[str, Any]) -> bool:
    """Evaluate an `{{#if}}` condition."""
    equality = EQUALITY_RE.match(condition)
    if equality:
        name, expected = equality.groups()
        actual = _lookup(name, data)
        return actual is not _MISSING and actual == expected
    value = _lookup(condition, data)
    return value is not _MISSING and bool(value)


def extract_variables(template: str) -> List[str]:
    """Return the variable names referenced by `template`, in order of first use.

    Upper-case names are reported lower-cased, the way they are looked up.
    """
    seen: List[str] = []
    for match in IF_BLOCK_RE.finditer(template or ''):
        condition = match.group(1).strip()
        equality = EQUALITY_RE.match(condition)
        name = equality.group(1) if equality else condition
        _remember(_normalize_name(name), seen)
    for match in PLACEHOLDER_RE.finditer(template or ''):
        _remember(_normalize_name(match.group(1)), seen)
    return seen


def missing_required_fields(config: Dict[str, Any], data: Optional[Dict[str, Any]]) -> List[str]:
    """List ids of required fields in `config` that are empty in `data`."""
    data = data or {}
    missing = []
    for field in config.get('fields', []):
        if not field.get('required'):
            continue
        value = data.get(field.get('id'))
        if value is None or (isinstance(value, str) and not value.strip()):
            missing.append(field.get('id'))
    return missing


def _lookup(name: str, data: Dict[str, Any]) -> Any:
    if '.' in name:
        obj_name, prop = name.split('.', 1)
        obj = data.get(obj_name)
        if isinstance(obj, dict) and prop in obj:
            return obj[prop]
        return _MISSING
    if name in data:
        return data[name]
    if UPPER_NAME_RE.match(name) and name.lower() in data:
        return data[name.lower()]
    return _MISSING


def _normalize_name(name: str) -> str:
    if UPPER_NAME_RE.match(name):
        return name.lower()
    return name


def _remember(name: str, seen: List[str]) -> None:
    if name and name not in seen:
        seen.append(name)


def _stringify(value: Any) -> str:
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, (list, tuple)):
        return ', '.join(_stringify(v) for v in value)
    return str(value)
