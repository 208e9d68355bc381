"""CLI package for running the cabinet fan controller.

The Typer application lives in ``cli.app``; it is not re-exported here so
that ``cli.app`` keeps resolving to the module, which tests patch.
"""

__all__ = []
