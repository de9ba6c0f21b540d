"""
Language server for .ink scripts.

This module provides:
- Live lint diagnostics
- Hover and go-to-definition for divert targets
- Code actions phrased as suggestions (not commands)
"""

from .server import create_server, start_server

__all__ = ["create_server", "start_server"]
