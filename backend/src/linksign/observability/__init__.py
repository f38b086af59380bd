"""Metrics instrumentation."""
