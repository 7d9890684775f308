"""Filesystem helpers for the JSON content store."""

from __future__ import annotations

import json
import os
from typing import Any


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def read_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def write_text_atomic(path: str, text: str) -> None:
    """Write ``text`` to a sibling ``.tmp`` file and rename it over ``path``.

    Readers never observe a half-written file: they see either the previous
    content or the new one.  The temporary file is removed if writing fails.
    """
    ensure_dir(os.path.dirname(path) or ".")
    tmp = path + ".tmp"
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def write_json_atomic(path: str, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False))
