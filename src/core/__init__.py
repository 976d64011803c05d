"""Cross-cutting infrastructure: logging, request context, errors, storage."""
