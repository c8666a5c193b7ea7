"""Discubot utilities: model-response JSON parsing and notification email parsing."""

from .email import extract_file_key_from_url, parse_figma_email, recipient_slug
from .json_parser import parse_analysis_json, parse_json_safely

__all__ = [
    "extract_file_key_from_url",
    "parse_analysis_json",
    "parse_figma_email",
    "parse_json_safely",
    "recipient_slug",
]
