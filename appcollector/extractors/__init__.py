"""Structured page extraction gateways."""

from .base import ErrorKind, ExtractionFailure, ExtractionGateway, ExtractionOk, ExtractionResult

__all__ = [
    "ErrorKind",
    "ExtractionFailure",
    "ExtractionGateway",
    "ExtractionOk",
    "ExtractionResult",
]
