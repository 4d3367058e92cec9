"""
Inference backends for scan_kit.

Backends are kept in a separate module so the decoding helpers stay
lightweight and can be used without installing inference runtimes.
"""

from __future__ import annotations

from .base import ModelHandle

__all__ = ["ModelHandle"]
