"""Cross-cutting helpers: errors, logging, request context."""
