"""
Static reference code tables (ISO 4217 currencies).

Loaded once from ``<reference_dir>/<name>.yaml`` into frozensets that are
shared read-only by every worker.
"""

import threading
from pathlib import Path

import yaml

from emir_quality.core.errors import RuleCatalogError

_cache: dict[Path, frozenset[str]] = {}
_lock = threading.Lock()


def load_code_table(path: str | Path) -> frozenset[str]:
    """
    Load a code table file.

    Args:
        path: YAML file with a ``codes`` list

    Returns:
        Frozen set of codes (cached per resolved path)

    Raises:
        RuleCatalogError: If the file is missing or has no codes
    """
    resolved = Path(path).resolve()
    with _lock:
        if resolved in _cache:
            return _cache[resolved]

        if not resolved.exists():
            raise RuleCatalogError(f"Reference table not found: {resolved}")
        with open(resolved) as f:
            document = yaml.safe_load(f) or {}

        codes = document.get("codes")
        if not codes:
            raise RuleCatalogError(f"Reference table {resolved} has no 'codes'")

        table = frozenset(str(code).strip() for code in codes)
        _cache[resolved] = table
        return table


def load_currency_codes(reference_dir: str | Path) -> frozenset[str]:
    return load_code_table(Path(reference_dir) / "iso4217.yaml")
