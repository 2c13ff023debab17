"""
Anchor Core - Anchor Edge State

Linked-chain neighbor roots and the ordered RootInfo list used by proofs.
"""
from .edge_state import AnchorEdgeState

__all__ = ["AnchorEdgeState"]
