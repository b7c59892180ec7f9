"""
Workspace scan step.

Packs the current workspace into ``workspace.zip`` and submits it to the
Onapsis code scanning service.
"""

__all__ = ["cli", "config", "scanner"]
