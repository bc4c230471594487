from __future__ import annotations

from functools import lru_cache
from pathlib import Path

PROMPT_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt(filename: str) -> str:
    """Load a translation prompt template shipped next to this module.

    Templates may contain ``[CALLER_LANGUAGE]``, filled in per call.
    """

    path = PROMPT_DIR / filename
    if not path.is_file():
        raise RuntimeError(f"Prompt template not found: {filename}")
    return path.read_text(encoding="utf-8").strip()
