"""Tunable parameters for the database, reads and writes."""

from __future__ import annotations

import enum
import sys
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

KIB = 1024
MIB = KIB * 1024
GIB = MIB * 1024

DEFAULT_BLOCK_CACHE_CAPACITY = 8 * MIB
DEFAULT_BLOCK_RESTART_INTERVAL = 16
DEFAULT_BLOCK_SIZE = 4 * KIB
DEFAULT_COMPACTION_EXPAND_LIMIT_FACTOR = 25
DEFAULT_COMPACTION_GP_OVERLAPS_FACTOR = 10
DEFAULT_COMPACTION_L0_TRIGGER = 4
DEFAULT_COMPACTION_SOURCE_LIMIT_FACTOR = 1
DEFAULT_COMPACTION_TABLE_SIZE = 2 * MIB
DEFAULT_COMPACTION_TABLE_SIZE_MULTIPLIER = 1.0
DEFAULT_COMPACTION_TOTAL_SIZE = 10 * MIB
DEFAULT_COMPACTION_TOTAL_SIZE_MULTIPLIER = 10.0
DEFAULT_ITERATOR_SAMPLING_RATE = 1 * MIB
DEFAULT_WRITE_BUFFER = 4 * MIB
DEFAULT_WRITE_L0_PAUSE_TRIGGER = 12
DEFAULT_WRITE_L0_SLOWDOWN_TRIGGER = 8
DEFAULT_FILTER_BASE_LG = 11
DEFAULT_MAX_MANIFEST_FILE_SIZE = 64 * MIB
DEFAULT_OPEN_FILES_CACHE_CAPACITY = 200 if sys.platform == "darwin" else 500


class Compression(enum.IntEnum):
    """Block compression algorithm for sorted tables."""

    DEFAULT = 0
    NONE = 1
    SNAPPY = 2

    def __str__(self) -> str:
        return {
            Compression.DEFAULT: "default",
            Compression.NONE: "none",
            Compression.SNAPPY: "snappy",
        }[self]


DEFAULT_COMPRESSION_TYPE = Compression.SNAPPY


class Strict(enum.IntFlag):
    """Strictness flags controlling how corruption is handled."""

    MANIFEST = 1
    JOURNAL_CHECKSUM = 2
    JOURNAL = 4
    BLOCK_CHECKSUM = 8
    COMPACTION = 16
    READER = 32
    RECOVERY = 64
    OVERRIDE = 128

    ALL = 127
    DEFAULT = JOURNAL_CHECKSUM | BLOCK_CHECKSUM | COMPACTION | READER


# A non-zero strict level that enables none of the strict flags.
NO_STRICT = Strict.OVERRIDE


def _positive_or(value, default):
    return value if value > 0 else default


def _level_multiplier(per_level: Sequence[float], multiplier: float, level: int) -> float:
    if level < len(per_level) and per_level[level] > 0:
        return per_level[level]
    return multiplier**level


@dataclass(frozen=True)
class Options:
    """Database-wide options; unset or out-of-range values fall back to defaults."""

    alt_filters: Sequence[Any] = ()
    block_cache_capacity: int = DEFAULT_BLOCK_CACHE_CAPACITY
    block_cache_evict_removed: bool = False
    block_restart_interval: int = DEFAULT_BLOCK_RESTART_INTERVAL
    block_size: int = DEFAULT_BLOCK_SIZE
    compaction_expand_limit_factor: int = DEFAULT_COMPACTION_EXPAND_LIMIT_FACTOR
    compaction_gp_overlaps_factor: int = DEFAULT_COMPACTION_GP_OVERLAPS_FACTOR
    compaction_l0_trigger: int = DEFAULT_COMPACTION_L0_TRIGGER
    compaction_source_limit_factor: int = DEFAULT_COMPACTION_SOURCE_LIMIT_FACTOR
    compaction_table_size_base: int = DEFAULT_COMPACTION_TABLE_SIZE
    compaction_table_size_multiplier: float = DEFAULT_COMPACTION_TABLE_SIZE_MULTIPLIER
    compaction_table_size_multiplier_per_level: Sequence[float] = ()
    compaction_total_size_base: int = DEFAULT_COMPACTION_TOTAL_SIZE
    compaction_total_size_multiplier: float = DEFAULT_COMPACTION_TOTAL_SIZE_MULTIPLIER
    compaction_total_size_multiplier_per_level: Sequence[float] = ()
    comparer: Any = None
    compression: Compression = DEFAULT_COMPRESSION_TYPE
    disable_buffer_pool: bool = False
    disable_block_cache: bool = False
    disable_compaction_backoff: bool = False
    disable_large_batch_transaction: bool = False
    disable_seeks_compaction: bool = False
    error_if_exist: bool = False
    error_if_missing: bool = False
    filter: Any = None
    iterator_sampling_rate: int = DEFAULT_ITERATOR_SAMPLING_RATE
    no_sync: bool = False
    no_write_merge: bool = False
    open_files_cache_capacity: int = DEFAULT_OPEN_FILES_CACHE_CAPACITY
    read_only: bool = False
    strict: Strict = Strict.DEFAULT
    write_buffer: int = DEFAULT_WRITE_BUFFER
    write_l0_pause_trigger: int = DEFAULT_WRITE_L0_PAUSE_TRIGGER
    write_l0_slowdown_trigger: int = DEFAULT_WRITE_L0_SLOWDOWN_TRIGGER
    filter_base_lg: int = DEFAULT_FILTER_BASE_LG
    max_manifest_file_size: int = DEFAULT_MAX_MANIFEST_FILE_SIZE
    _extra: dict = field(default_factory=dict, repr=False, compare=False)

    def __post_init__(self) -> None:
        def put(name, value):
            object.__setattr__(self, name, value)

        put("alt_filters", tuple(self.alt_filters))
        put("block_cache_capacity", max(self.block_cache_capacity, 0))
        put("block_restart_interval", _positive_or(self.block_restart_interval, DEFAULT_BLOCK_RESTART_INTERVAL))
        put("block_size", _positive_or(self.block_size, DEFAULT_BLOCK_SIZE))
        put(
            "compaction_expand_limit_factor",
            _positive_or(self.compaction_expand_limit_factor, DEFAULT_COMPACTION_EXPAND_LIMIT_FACTOR),
        )
        put(
            "compaction_gp_overlaps_factor",
            _positive_or(self.compaction_gp_overlaps_factor, DEFAULT_COMPACTION_GP_OVERLAPS_FACTOR),
        )
        if self.compaction_l0_trigger == 0:
            put("compaction_l0_trigger", DEFAULT_COMPACTION_L0_TRIGGER)
        put(
            "compaction_source_limit_factor",
            _positive_or(self.compaction_source_limit_factor, DEFAULT_COMPACTION_SOURCE_LIMIT_FACTOR),
        )
        put("compaction_table_size_base", _positive_or(self.compaction_table_size_base, DEFAULT_COMPACTION_TABLE_SIZE))
        put(
            "compaction_table_size_multiplier",
            _positive_or(self.compaction_table_size_multiplier, DEFAULT_COMPACTION_TABLE_SIZE_MULTIPLIER),
        )
        put("compaction_table_size_multiplier_per_level", tuple(self.compaction_table_size_multiplier_per_level))
        put("compaction_total_size_base", _positive_or(self.compaction_total_size_base, DEFAULT_COMPACTION_TOTAL_SIZE))
        put(
            "compaction_total_size_multiplier",
            _positive_or(self.compaction_total_size_multiplier, DEFAULT_COMPACTION_TOTAL_SIZE_MULTIPLIER),
        )
        put("compaction_total_size_multiplier_per_level", tuple(self.compaction_total_size_multiplier_per_level))
        if self.compression in (Compression.NONE, Compression.SNAPPY):
            put("compression", Compression(self.compression))
        else:
            put("compression", DEFAULT_COMPRESSION_TYPE)
        put("iterator_sampling_rate", max(self.iterator_sampling_rate, 0))
        put("open_files_cache_capacity", max(self.open_files_cache_capacity, 0))
        put("strict", Strict(self.strict) if self.strict else Strict.DEFAULT)
        put("write_buffer", _positive_or(self.write_buffer, DEFAULT_WRITE_BUFFER))
        if self.write_l0_pause_trigger == 0:
            put("write_l0_pause_trigger", DEFAULT_WRITE_L0_PAUSE_TRIGGER)
        if self.write_l0_slowdown_trigger == 0:
            put("write_l0_slowdown_trigger", DEFAULT_WRITE_L0_SLOWDOWN_TRIGGER)
        put("filter_base_lg", _positive_or(self.filter_base_lg, DEFAULT_FILTER_BASE_LG))
        put("max_manifest_file_size", _positive_or(self.max_manifest_file_size, DEFAULT_MAX_MANIFEST_FILE_SIZE))

    def compaction_table_size(self, level: int) -> int:
        """Size limit of a table that compaction writes at ``level``."""
        mult = _level_multiplier(
            self.compaction_table_size_multiplier_per_level, self.compaction_table_size_multiplier, level
        )
        return int(float(self.compaction_table_size_base) * mult)

    def compaction_total_size(self, level: int) -> int:
        """Total size limit of all tables at ``level``."""
        mult = _level_multiplier(
            self.compaction_total_size_multiplier_per_level, self.compaction_total_size_multiplier, level
        )
        return int(float(self.compaction_total_size_base) * mult)

    def compaction_expand_limit(self, level: int) -> int:
        """Maximum compaction size after expansion from ``level``."""
        return self.compaction_table_size(level + 1) * self.compaction_expand_limit_factor

    def compaction_gp_overlaps(self, level: int) -> int:
        """Maximum grandparent overlap a single output table may have."""
        return self.compaction_table_size(level + 2) * self.compaction_gp_overlaps_factor

    def compaction_source_limit(self, level: int) -> int:
        """Maximum compaction source size taken from ``level``."""
        return self.compaction_table_size(level + 1) * self.compaction_source_limit_factor

    def strict_enabled(self, flag: Strict) -> bool:
        """Whether any bit of ``flag`` is set in the strict level."""
        return bool(self.strict & flag)


@dataclass(frozen=True)
class ReadOptions:
    """Options for a single read operation."""

    dont_fill_cache: bool = False
    strict: Strict = Strict(0)

    def strict_enabled(self, flag: Strict) -> bool:
        """Whether any bit of ``flag`` is set in this read's strict level."""
        return bool(self.strict & flag)


@dataclass(frozen=True)
class WriteOptions:
    """Options for a single write operation."""

    no_write_merge: bool = False
    sync: bool = False


def get_strict(
    options: Optional[Options], read_options: Optional[ReadOptions], flag: Strict
) -> bool:
    """Combine database and read strictness; OVERRIDE on the read wins outright."""
    ro_enabled = read_options is not None and read_options.strict_enabled(flag)
    if read_options is not None and read_options.strict_enabled(Strict.OVERRIDE):
        return ro_enabled
    opts = options if options is not None else Options()
    return opts.strict_enabled(flag) or ro_enabled