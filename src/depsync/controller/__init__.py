"""Graph controller exports for depsync."""

from __future__ import annotations

from .graph_controller import GraphController

__all__ = ["GraphController"]
