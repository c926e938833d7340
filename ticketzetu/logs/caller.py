"""Source-position capture for log records.

Walks the current call stack (or an exception's traceback) and skips frames
whose filename contains any of the configured ignored substrings, so the
recorded file/line point at application code rather than at the web
framework, the event loop, or the logging package itself.
"""

from __future__ import annotations

import os
import traceback
from collections.abc import Iterable
from dataclasses import dataclass
from types import TracebackType

MAX_STACK_FRAMES = 20

_LOGS_PACKAGE = os.path.dirname(os.path.abspath(__file__))

DEFAULT_IGNORED_PATHS: frozenset[str] = frozenset({
    # Web framework
    f"{os.sep}fastapi{os.sep}",
    f"{os.sep}starlette{os.sep}",
    f"{os.sep}anyio{os.sep}",
    # Runtime
    f"{os.sep}asyncio{os.sep}",
    "<frozen ",
    # This package
    _LOGS_PACKAGE + os.sep,
})


@dataclass(frozen=True)
class CallerInfo:
    file: str | None
    line: int | None
    stack: str | None


def trim_path(path: str, segments: int = 3) -> str:
    """Keep only the last `segments` components of a path."""
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    return "/".join(parts[-segments:])


class CallerInspector:
    """Finds the first application frame on a stack.

    Args:
        ignored_paths: Substrings; frames whose filename contains any of them
            are skipped.
        max_frames: Upper bound on frames recorded in `stack`.
    """

    def __init__(
        self,
        ignored_paths: Iterable[str] = DEFAULT_IGNORED_PATHS,
        max_frames: int = MAX_STACK_FRAMES,
    ) -> None:
        self._ignored = tuple(ignored_paths)
        self._max_frames = max_frames

    def is_ignored(self, filename: str) -> bool:
        return any(marker in filename for marker in self._ignored)

    def capture(self, with_stack: bool = False, exc: BaseException | None = None) -> CallerInfo:
        """Return file/line of the nearest application frame.

        With `exc`, the frames come from its traceback and the innermost
        application frame (where it was raised) wins. Otherwise the live
        stack is walked from the caller outwards.
        """
        tb: TracebackType | None = exc.__traceback__ if exc is not None else None
        if tb is not None:
            # innermost first
            frames = list(reversed(traceback.extract_tb(tb)))
        else:
            frames = list(reversed(traceback.extract_stack()[:-1]))

        kept = [f for f in frames if not self.is_ignored(f.filename)]
        if not kept:
            return CallerInfo(file=None, line=None, stack=None)

        first = kept[0]
        stack = None
        if with_stack:
            stack = "\n".join(
                f"{trim_path(f.filename)}:{f.lineno} {f.name}" for f in kept[: self._max_frames]
            )
        return CallerInfo(file=trim_path(first.filename), line=first.lineno, stack=stack)
