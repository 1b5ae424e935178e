"""
LinkForge: Reversible filesystem mutations for payload installs and directory links.

Idempotent tree sync backed by content-addressed manifests, plus link
substitution and relocation with automatic backups and durable lock state.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
