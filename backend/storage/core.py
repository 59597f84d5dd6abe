"""Storage initialization, path helpers, and slug utilities."""

import re
import unicodedata
from pathlib import Path

_data_dir: Path | None = None


def slugify(title: str) -> str:
    """Convert a name to a filesystem-safe slug.

    "Old Marta the Herbalist" → "old-marta-the-herbalist"
    """
    text = unicodedata.normalize("NFKD", title)
    text = text.encode("ascii", "ignore").decode("ascii")
    text = text.lower()
    text = re.sub(r"['\"]", "", text)  # strip apostrophes/quotes before hyphenation
    text = re.sub(r"[^a-z0-9]+", "-", text)
    text = text.strip("-")
    return text or "unnamed"


def init_storage(data_dir: Path) -> None:
    global _data_dir
    from . import characters as _char_mod

    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    characters_dir().mkdir(exist_ok=True)
    _char_mod._loaded.clear()  # drop in-process memories of the previous data dir


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def characters_dir() -> Path:
    return data_dir() / "characters"
