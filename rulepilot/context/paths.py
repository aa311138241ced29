"""
Candidate file-path extraction from free text.

Pure function, no filesystem access. Callers must still check that a
candidate exists before reading it: the heuristic is deliberately generous.
"""

from __future__ import annotations

import re

_URL_RE = re.compile(r"\b[a-zA-Z][\w+.-]*://\S+")

# Optional quote, optional ./ ../ / \ or drive prefix, directory segments, final segment,
# then the same quote again (or nothing).
_PATH_RE = re.compile(
    r"""(['"`]?)((?:\.{1,2}[/\\]|[/\\]|[A-Za-z]:[/\\])?(?:[\w.-]+[/\\])*[\w.-]+)\1"""
)

_VERSION_RE = re.compile(r"^v?\d+(?:\.\d+)+$")
_BARE_FILENAME_RE = re.compile(r"^[\w-]+(?:\.[\w-]+)*\.[A-Za-z][A-Za-z0-9]{0,9}$")


def _is_path_shaped(candidate: str) -> bool:
    if "/" in candidate or "\\" in candidate:
        return True
    if candidate.startswith("."):
        return len(candidate) > 1
    return bool(_BARE_FILENAME_RE.match(candidate))


def extract_file_paths(text: str | None) -> list[str]:
    """Return unique path-shaped substrings of ``text`` in discovery order.

    Matches relative (``src/app.py``, ``./lib``, ``../x/y.ts``), absolute
    (``/etc/app.conf``, ``C:\\proj\\main.c``), dotfiles (``.env``) and bare
    file names with an alphabetic extension (``README.md``), quoted or bare.
    Dotted version numbers (``1.2.3``) and URLs are ignored.
    """
    if not text:
        return []

    text = _URL_RE.sub(" ", text)
    found: dict[str, None] = {}

    for match in _PATH_RE.finditer(text):
        candidate = match.group(2).rstrip(".")
        if not candidate or _VERSION_RE.match(candidate):
            continue
        if _is_path_shaped(candidate):
            found.setdefault(candidate, None)

    return list(found)
