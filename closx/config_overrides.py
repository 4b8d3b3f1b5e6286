"""CLI configuration override utilities.

This module applies `--set KEY=VALUE` overrides to the merged configuration
data before it is validated, so any config file setting can be changed for
one run without editing the file.
"""
from __future__ import annotations

import json
from typing import Any, Dict, Iterable


def parse_set_override(spec: str) -> tuple[str, Any]:
    """Parse --set KEY=VALUE specification.

    Args:
        spec: Override specification in format KEY=VALUE

    Returns:
        Tuple of (key_path, value) where key_path supports dot notation

    Raises:
        ValueError: If spec format is invalid

    Examples:
        >>> parse_set_override("agent.model=openai:gpt-4o")
        ('agent.model', 'openai:gpt-4o')
        >>> parse_set_override("agent.max_turns=5")
        ('agent.max_turns', 5)
        >>> parse_set_override('policy.allow_list=["ls", "git status"]')
        ('policy.allow_list', ['ls', 'git status'])
    """
    if '=' not in spec:
        raise ValueError(
            f"Invalid --set format: {spec!r}. Expected KEY=VALUE "
            f"(e.g., --set policy.mode=denylist)"
        )

    key, value_str = spec.split('=', 1)
    key = key.strip()
    value = _parse_value(value_str.strip())

    if not key:
        raise ValueError(f"Empty key in --set: {spec!r}")
    if any(not part for part in key.split('.')):
        raise ValueError(f"Invalid key path in --set: {key!r}")

    return (key, value)


def _parse_value(value_str: str) -> Any:
    """Parse value string with type inference.

    Attempts to parse in this order:
    1. JSON (for lists, dicts, null, and JSON literals)
    2. Boolean literals (true/false/yes/no/on/off, case-insensitive)
    3. Numbers (int, float)
    4. Strings (default)

    Examples:
        >>> _parse_value("true")
        True
        >>> _parse_value("30000")
        30000
        >>> _parse_value('["sudo", "rm -rf"]')
        ['sudo', 'rm -rf']
        >>> _parse_value("allowlist")
        'allowlist'
    """
    if not value_str:
        return ""

    try:
        return json.loads(value_str)
    except (json.JSONDecodeError, ValueError):
        pass

    lower = value_str.lower()
    if lower in ('true', 'yes', 'on'):
        return True
    if lower in ('false', 'no', 'off'):
        return False

    try:
        if '.' in value_str or 'e' in lower:
            return float(value_str)
        return int(value_str)
    except ValueError:
        pass

    return value_str


def apply_set_override(data: Dict[str, Any], key_path: str, value: Any) -> None:
    """Apply a single override to the config data, in place.

    Uses dot notation to navigate nested tables. Creates intermediate
    dictionaries as needed.

    Raises:
        ValueError: If path navigation fails (non-dict encountered)

    Examples:
        >>> data = {}
        >>> apply_set_override(data, "execution.timeout_ms", 5000)
        >>> data
        {'execution': {'timeout_ms': 5000}}
    """
    keys = key_path.split('.')
    target = data

    for key in keys[:-1]:
        if key not in target or target[key] is None:
            target[key] = {}
        elif not isinstance(target[key], dict):
            raise ValueError(
                f"Cannot navigate through non-dict field '{key}' in path '{key_path}'. "
                f"Field is type {type(target[key]).__name__}"
            )
        target = target[key]

    target[keys[-1]] = value


def apply_cli_overrides(data: Dict[str, Any], *, set_overrides: Iterable[str]) -> Dict[str, Any]:
    """Apply --set KEY=VALUE specifications in order (last wins).

    Returns:
        The same dict, modified in place

    Raises:
        ValueError: If a specification is malformed
    """
    for set_spec in set_overrides:
        try:
            key_path, value = parse_set_override(set_spec)
            apply_set_override(data, key_path, value)
        except ValueError as e:
            raise ValueError(f"Invalid --set override {set_spec!r}: {e}") from e
    return data


__all__ = ["apply_cli_overrides", "apply_set_override", "parse_set_override"]
