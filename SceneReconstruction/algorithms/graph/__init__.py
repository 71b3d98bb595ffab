"""
Graph partitioning.
"""

from .normalized_graph_cut import NormalizedGraphCut

__all__ = ['NormalizedGraphCut']
