import dataclasses

import pytest

from ldbstore.options import (
    DEFAULT_BLOCK_SIZE,
    DEFAULT_COMPACTION_TABLE_SIZE,
    DEFAULT_COMPACTION_TOTAL_SIZE,
    DEFAULT_MAX_MANIFEST_FILE_SIZE,
    NO_STRICT,
    Compression,
    Options,
    ReadOptions,
    Strict,
    WriteOptions,
    get_strict,
)


def test_default_sizes_match_documented_values():
    o = Options()
    assert o.block_size == 4 * 1024
    assert o.write_buffer == 4 * 1024 * 1024
    assert o.max_manifest_file_size == 64 * 1024 * 1024
    assert o.compaction_table_size(0) == 2 * 1024 * 1024


def test_non_positive_values_fall_back_to_defaults():
    o = Options(block_size=0, max_manifest_file_size=-5, write_buffer=-1)
    assert o.block_size == DEFAULT_BLOCK_SIZE
    assert o.max_manifest_file_size == DEFAULT_MAX_MANIFEST_FILE_SIZE
    assert o.write_buffer == Options().write_buffer


def test_negative_capacity_means_zero_and_survives_replace():
    o = Options(block_cache_capacity=-1, open_files_cache_capacity=-1, iterator_sampling_rate=-1)
    assert o.block_cache_capacity == 0
    assert o.open_files_cache_capacity == 0
    assert o.iterator_sampling_rate == 0
    o2 = dataclasses.replace(o, block_size=80)
    assert o2.block_cache_capacity == 0
    assert o2.block_size == 80


def test_compression_defaults_to_snappy():
    assert Options().compression is Compression.SNAPPY
    assert Options(compression=Compression.DEFAULT).compression is Compression.SNAPPY
    assert Options(compression=Compression.NONE).compression is Compression.NONE
    assert Options(compression=7).compression is Compression.SNAPPY


def test_compression_names():
    assert str(Compression(0)) == "default"
    assert str(Compression(1)) == "none"
    assert str(Compression(2)) == "snappy"
    assert str(Options(compression=Compression.NONE).compression) == "none"


def test_table_size_constant_across_levels_by_default():
    o = Options()
    assert {o.compaction_table_size(level) for level in range(7)} == {DEFAULT_COMPACTION_TABLE_SIZE}


def test_total_size_grows_tenfold_per_level():
    o = Options()
    assert o.compaction_total_size(0) == DEFAULT_COMPACTION_TOTAL_SIZE
    for level in range(1, 5):
        assert o.compaction_total_size(level) == 10 * o.compaction_total_size(level - 1)


def test_table_size_multiplier():
    o = Options(compaction_table_size_base=1000, compaction_table_size_multiplier=2.0)
    assert o.compaction_table_size(0) == 1000
    assert o.compaction_table_size(3) == 1000 * 2 * 2 * 2


def test_per_level_multiplier_overrides_and_zero_skips():
    o = Options(
        compaction_table_size_base=1000,
        compaction_table_size_multiplier=2.0,
        compaction_table_size_multiplier_per_level=[0, 3.0],
    )
    assert o.compaction_table_size(0) == 1000
    assert o.compaction_table_size(1) == 3000
    assert o.compaction_table_size(2) == 1000 * 2 * 2


def test_total_size_per_level_multiplier():
    o = Options(compaction_total_size_base=500, compaction_total_size_multiplier_per_level=[0, 0, 4.0])
    assert o.compaction_total_size(2) == 2000
    assert o.compaction_total_size(1) == 5000


def test_derived_compaction_limits_use_factors():
    o = Options(compaction_table_size_base=2000)
    assert o.compaction_expand_limit(0) == o.compaction_table_size(1) * 25
    assert o.compaction_gp_overlaps(0) == o.compaction_table_size(2) * 10
    assert o.compaction_source_limit(0) == o.compaction_table_size(1) * 1
    custom = Options(compaction_table_size_base=2000, compaction_source_limit_factor=3)
    assert custom.compaction_source_limit(1) == 6000


def test_default_strict_flags():
    o = Options()
    assert o.strict == Strict.DEFAULT
    assert o.strict_enabled(Strict.READER)
    assert o.strict_enabled(Strict.COMPACTION)
    assert o.strict_enabled(Strict.JOURNAL_CHECKSUM)
    assert not o.strict_enabled(Strict.MANIFEST)
    assert not o.strict_enabled(Strict.RECOVERY)


def test_zero_strict_uses_default_and_no_strict_disables_all():
    assert Options(strict=0).strict == Strict.DEFAULT
    o = Options(strict=NO_STRICT)
    assert not any(o.strict_enabled(flag) for flag in (Strict.MANIFEST, Strict.READER, Strict.COMPACTION))


def test_strict_all_enables_everything_but_override():
    o = Options(strict=Strict.ALL)
    assert o.strict_enabled(Strict.MANIFEST)
    assert o.strict_enabled(Strict.RECOVERY)
    assert not o.strict_enabled(Strict.OVERRIDE)


def test_read_options_strict():
    ro = ReadOptions(strict=Strict.READER)
    assert ro.strict_enabled(Strict.READER)
    assert not ro.strict_enabled(Strict.MANIFEST)
    assert not ReadOptions().strict_enabled(Strict.READER)


def test_get_strict_ors_options_and_read_options():
    o = Options(strict=NO_STRICT)
    assert not get_strict(o, None, Strict.READER)
    assert get_strict(o, ReadOptions(strict=Strict.READER), Strict.READER)
    assert get_strict(None, None, Strict.READER)


def test_get_strict_override_ignores_options():
    ro = ReadOptions(strict=Strict.OVERRIDE)
    assert not get_strict(Options(), ro, Strict.READER)
    ro2 = ReadOptions(strict=Strict.OVERRIDE | Strict.READER)
    assert get_strict(Options(strict=NO_STRICT), ro2, Strict.READER)


def test_options_are_immutable():
    o = Options()
    with pytest.raises(dataclasses.FrozenInstanceError):
        o.block_size = 1  # type: ignore[misc]
    assert o.block_size == DEFAULT_BLOCK_SIZE


def test_write_options_defaults():
    wo = WriteOptions()
    assert (wo.sync, wo.no_write_merge) == (False, False)
    assert WriteOptions(sync=True).sync is True


def test_l0_triggers_zero_means_default():
    o = Options(compaction_l0_trigger=0, write_l0_pause_trigger=0, write_l0_slowdown_trigger=0)
    assert o.compaction_l0_trigger == 4
    assert o.write_l0_pause_trigger == 12
    assert o.write_l0_slowdown_trigger == 8