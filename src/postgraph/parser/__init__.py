"""Document parsing and reference-link resolution."""

from .document import compute_signature, load_document, parse_date, parse_document, split_front_matter
from .references import internal_slug, normalize_label, resolve_references

__all__ = [
    "compute_signature",
    "internal_slug",
    "load_document",
    "normalize_label",
    "parse_date",
    "parse_document",
    "resolve_references",
    "split_front_matter",
]
