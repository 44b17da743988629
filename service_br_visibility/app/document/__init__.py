"""
Live document tree.

Wraps a BeautifulSoup tree the host mutates and reports structural
changes to observers, the way a browser reports childList mutations.
"""

from .tree import LiveDocument, MutationRecord
from . import nodes

__all__ = ["LiveDocument", "MutationRecord", "nodes"]
