from __future__ import annotations

from collections.abc import Iterable


def flux_str(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def flux_any_of(column: str, values: Iterable[str]) -> str:
    """``r["col"] == "a" or r["col"] == "b"`` predicate body."""
    return " or ".join(f"r[{flux_str(column)}] == {flux_str(v)}" for v in values)


def flux_minutes(minutes: int) -> str:
    return f"-{max(int(minutes), 1)}m"
