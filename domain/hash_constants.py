"""Hash and archive naming constants for the dependency cache."""

HASH_ALGORITHM = "md5"  # 32 hex chars, part of the on-disk entry name
BLOCK_SIZE = 8192  # 8KB block size for file and transfer processing
ARCHIVE_SUFFIX = ".tar.gz"
PARTIAL_SUFFIX = ".part"
CACHE_ENTRY_PATTERN = r"^[0-9a-f]{32}\.tar\.gz$"
