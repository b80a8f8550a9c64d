"""High-level entry points for driving tilekit from Python."""

from .run import ConversionRunResult, convert_from_config

__all__ = ["ConversionRunResult", "convert_from_config"]
