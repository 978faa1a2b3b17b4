"""Include/exclude filtering of absolute paths."""

import re
from typing import List, Optional, Sequence

from mirror_sync.exceptions import MirrorSyncError


class PatternFilter:
    """Accepts or rejects paths against anchored regular expressions.

    When include patterns are given, a path must fully match at least one
    of them. A path that passes is then rejected if it fully matches any
    exclude pattern.
    """

    def __init__(
        self,
        includes: Optional[Sequence[str]] = None,
        excludes: Optional[Sequence[str]] = None,
    ):
        self.includes = self._compile(includes)
        self.excludes = self._compile(excludes)

    @staticmethod
    def _compile(patterns: Optional[Sequence[str]]) -> Optional[List["re.Pattern[str]"]]:
        if patterns is None:
            return None
        compiled = []
        for pattern in patterns:
            try:
                compiled.append(re.compile(pattern))
            except re.error as e:
                raise MirrorSyncError(f"Invalid pattern '{pattern}': {e}") from e
        return compiled

    def accepts(self, path: str) -> bool:
        if self.includes is not None:
            if not any(p.fullmatch(path) for p in self.includes):
                return False

        if self.excludes is not None:
            if any(p.fullmatch(path) for p in self.excludes):
                return False

        return True
