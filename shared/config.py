"""Environment driven settings shared by the CLI and the HTTP service."""
import os
from dataclasses import dataclass

MIB = 1024 * 1024
DEFAULT_MARKER = '"id":'


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    marker: str = DEFAULT_MARKER
    flush_threshold: int = MIB               # characters
    slice_size: int = 10 * MIB               # bytes
    decompress_chunk_size: int = 64 * 1024   # bytes per decompressor call
    max_body_size: int = 500 * MIB
    memory_log_interval: int = 50 * MIB
    decode_errors: str = "replace"
    data_dir: str = "test-data"
    port: int = 3000
    debug: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables, falling back to defaults."""
        decode_errors = os.environ.get("DECODE_ERRORS", "replace")
        if decode_errors not in ("replace", "strict"):
            raise ValueError(f"DECODE_ERRORS must be 'replace' or 'strict', got {decode_errors!r}")
        marker = os.environ.get("SCAN_MARKER") or DEFAULT_MARKER
        return cls(
            marker=marker,
            flush_threshold=_env_int("STREAM_FLUSH_THRESHOLD", MIB),
            slice_size=_env_int("BUFFERED_SLICE_SIZE", 10 * MIB),
            decompress_chunk_size=_env_int("DECOMPRESS_CHUNK_SIZE", 64 * 1024),
            max_body_size=_env_int("MAX_BODY_SIZE", 500 * MIB),
            memory_log_interval=_env_int("MEMORY_LOG_INTERVAL", 50 * MIB),
            decode_errors=decode_errors,
            data_dir=os.environ.get("TEST_DATA_DIR", "test-data"),
            port=_env_int("PORT", 3000),
            debug=os.environ.get("DEBUG", "").lower() in ("1", "true", "yes"),
        )
