# src/noderewards/env.py
from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

_LOADED = False


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """Load NODEREWARDS_* settings from a .env file, at most once per process.

    The file is `dotenv_path`, else $NODEREWARDS_DOTENV_PATH, else ./.env.
    Variables already in the environment are left alone. Returns whether a
    file was loaded by this call.
    """
    global _LOADED
    if _LOADED:
        return False
    _LOADED = True

    candidate = Path(dotenv_path or os.environ.get("NODEREWARDS_DOTENV_PATH") or ".env").expanduser()
    if not candidate.is_file():
        return False
    load_dotenv(dotenv_path=candidate, override=False)
    return True
