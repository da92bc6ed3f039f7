"""Storage backends, options and manifest records for a LevelDB-style key/value store."""

__version__ = "0.1.0"
__all__ = [
    "options",
    "cached_options",
    "storage",
    "mem_storage",
    "counting",
    "session_record",
    "file_storage",
]