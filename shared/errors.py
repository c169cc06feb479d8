"""Errors raised by the scan pipelines."""


class PipelineError(Exception):
    """Base class for anything that aborts a pipeline run."""

    kind = "pipeline"


class DecompressionError(PipelineError):
    """Compressed input is malformed, truncated or empty."""

    kind = "decompression"


class SourceError(PipelineError):
    """The byte source failed before delivering its end signal."""

    kind = "source"


class DecodeError(PipelineError):
    """Decompressed bytes are not valid text (strict decoding only)."""

    kind = "decode"


class PipelineStateError(PipelineError):
    """Operation not allowed in the pipeline's current state."""

    kind = "state"
