"""Options wrapper that precomputes per-level compaction limits."""

from __future__ import annotations

from typing import Optional

from ldbstore.options import Options

OPT_CACHED_LEVEL = 7


class CachedOptions:
    """Wraps :class:`Options` and caches level-dependent compaction limits.

    The first ``OPT_CACHED_LEVEL`` levels are computed once; deeper levels are
    computed on demand. Every other attribute is read from the wrapped options.
    """

    def __init__(self, options: Optional[Options] = None) -> None:
        self.options = options if options is not None else Options()
        levels = range(OPT_CACHED_LEVEL)
        self._expand_limit = tuple(self.options.compaction_expand_limit(lv) for lv in levels)
        self._gp_overlaps = tuple(self.options.compaction_gp_overlaps(lv) for lv in levels)
        self._source_limit = tuple(self.options.compaction_source_limit(lv) for lv in levels)
        self._table_size = tuple(self.options.compaction_table_size(lv) for lv in levels)
        self._total_size = tuple(self.options.compaction_total_size(lv) for lv in levels)

    def __getattr__(self, name: str):
        options = self.__dict__.get("options")
        if options is None:
            raise AttributeError(name)
        return getattr(options, name)

    def __repr__(self) -> str:
        return f"CachedOptions({self.options!r})"

    def compaction_expand_limit(self, level: int) -> int:
        """Maximum compaction size after expansion from ``level``."""
        if level < OPT_CACHED_LEVEL:
            return self._expand_limit[level]
        return self.options.compaction_expand_limit(level)

    def compaction_gp_overlaps(self, level: int) -> int:
        """Maximum grandparent overlap a single output table may have."""
        if level < OPT_CACHED_LEVEL:
            return self._gp_overlaps[level]
        return self.options.compaction_gp_overlaps(level)

    def compaction_source_limit(self, level: int) -> int:
        """Maximum compaction source size taken from ``level``."""
        if level < OPT_CACHED_LEVEL:
            return self._source_limit[level]
        return self.options.compaction_source_limit(level)

    def compaction_table_size(self, level: int) -> int:
        """Size limit of a table that compaction writes at ``level``."""
        if level < OPT_CACHED_LEVEL:
            return self._table_size[level]
        return self.options.compaction_table_size(level)

    def compaction_total_size(self, level: int) -> int:
        """Total size limit of all tables at ``level``."""
        if level < OPT_CACHED_LEVEL:
            return self._total_size[level]
        return self.options.compaction_total_size(level)