"""PATH lookup for external commands."""
from __future__ import annotations

import os
import shutil
from typing import Iterable, List, Optional

_EXEC_MODE = os.F_OK | os.X_OK


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def find_executable(name: str, path: Optional[str], cwd: Optional[str] = None) -> Optional[str]:
    """Return the absolute path of the first executable called `name` on `path`.

    Names containing a directory separator are checked as given, relative
    ones against `cwd`. An unset `path` finds nothing.
    """
    if not name:
        return None
    if os.sep in name or (os.altsep and os.altsep in name):
        candidate = os.path.join(cwd or os.getcwd(), name)
        return os.path.abspath(candidate) if _is_executable(candidate) else None
    if path is None:
        return None
    found = shutil.which(name, mode=_EXEC_MODE, path=path)
    return os.path.abspath(found) if found else None


def list_all_executables(path: Optional[str], extra: Iterable[str] = ()) -> List[str]:
    """Collect the base names of every executable file directly inside PATH.

    Directories that are missing or unreadable are skipped. `extra` names
    (the builtins) are appended; duplicates are kept.
    """
    names: List[str] = []
    for directory in (path or "").split(os.pathsep):
        if not directory:
            continue
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    try:
                        if entry.is_file() and os.access(entry.path, os.X_OK):
                            names.append(entry.name)
                    except OSError:
                        continue
        except OSError:
            continue
    names.extend(extra)
    return names
