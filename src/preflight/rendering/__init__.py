"""Renderers over a finalized :class:`~preflight.diagnose.DiagnoseReport`."""

from preflight.rendering.structured import dumps, loads, to_payload
from preflight.rendering.tree import LiveTreeWriter, iter_tree_lines, render_tree

__all__ = [
    "LiveTreeWriter",
    "dumps",
    "iter_tree_lines",
    "loads",
    "render_tree",
    "to_payload",
]
