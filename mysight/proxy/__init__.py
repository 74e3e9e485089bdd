"""Inference proxy server."""

from .app import create_app, escape_js_string

__all__ = ["create_app", "escape_js_string"]
