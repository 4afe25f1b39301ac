"""Nuclei wrapper for template-based vulnerability scanning."""

from .decoder import DecodedOutput, OutputShape, decode_output, is_finding_record
from .runner import NucleiRequest, NucleiRunner, resolve_template_paths

__all__ = [
    "DecodedOutput",
    "NucleiRequest",
    "NucleiRunner",
    "OutputShape",
    "decode_output",
    "is_finding_record",
    "resolve_template_paths",
]
