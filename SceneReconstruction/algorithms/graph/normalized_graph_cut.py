"""
Normalized graph cut (Shi & Malik) of a weighted undirected graph.

Minimizing the normalized cut relaxes to the generalized eigenproblem
(D - W) y = lambda D y. The eigenvector of the second smallest eigenvalue is
thresholded at several values between its first and third quartile and the
threshold with the lowest normalized cut cost defines the two subgraphs.
"""

from typing import Dict, Hashable, List, Optional, Set, Tuple

import numpy as np
import scipy.linalg
import scipy.sparse
import scipy.sparse.linalg

from ...config import NormalizedGraphCutOptions
from ...logger import get_logger

logger = get_logger("algorithms.graph_cut")


MIN_NUM_NODES = 4
# Graphs up to this size are solved with a dense eigensolver
DENSE_SOLVER_MAX_NODES = 500


class NormalizedGraphCut:
    """Split a graph into two parts with a minimal normalized cut"""

    def __init__(self, options: Optional[NormalizedGraphCutOptions] = None):
        self.options = options or NormalizedGraphCutOptions()
        if self.options.num_cuts_to_test < 1:
            raise ValueError("num_cuts_to_test must be at least 1")

    def compute_cut(self, edges: Dict[Tuple[Hashable, Hashable], float]
                    ) -> Optional[Tuple[Set, Set, float]]:
        """
        Compute the cut

        Args:
            edges: Map from node pair to (positive) edge weight

        Returns:
            (subgraph1, subgraph2, cost) or None if the graph is too small or
            the eigensolver failed
        """
        nodes = self._index_nodes(edges)
        if len(nodes) < MIN_NUM_NODES:
            logger.warning(f"Graph cut needs at least {MIN_NUM_NODES} nodes, got {len(nodes)}")
            return None

        W = self._edge_weight_matrix(edges, nodes)
        degrees = np.asarray(W.sum(axis=1)).ravel()
        if np.any(degrees <= 0):
            logger.warning("Graph cut requires every node to have a positive total edge weight")
            return None

        y = self._second_smallest_eigenvector(W, degrees)
        if y is None:
            return None

        best_cut_value, best_cost = self._find_optimal_cut(W, degrees, y)

        node_list = self._node_list(nodes)
        subgraph1 = {node for node, value in zip(node_list, y) if value > best_cut_value}
        subgraph2 = {node for node, value in zip(node_list, y) if value <= best_cut_value}
        return subgraph1, subgraph2, best_cost

    # =========================================================================
    # Linear system
    # =========================================================================

    @staticmethod
    def _index_nodes(edges) -> Dict[Hashable, int]:
        nodes: Dict[Hashable, int] = {}
        for node1, node2 in edges:
            if node1 not in nodes:
                nodes[node1] = len(nodes)
            if node2 not in nodes:
                nodes[node2] = len(nodes)
        return nodes

    @staticmethod
    def _node_list(nodes: Dict[Hashable, int]) -> List[Hashable]:
        node_list = [None] * len(nodes)
        for node, index in nodes.items():
            node_list[index] = node
        return node_list

    @staticmethod
    def _edge_weight_matrix(edges, nodes: Dict[Hashable, int]) -> scipy.sparse.csr_matrix:
        rows, cols, weights = [], [], []
        for (node1, node2), weight in edges.items():
            if node1 == node2:
                continue
            i, j = nodes[node1], nodes[node2]
            rows.extend([i, j])
            cols.extend([j, i])
            weights.extend([float(weight), float(weight)])
        n = len(nodes)
        return scipy.sparse.csr_matrix((weights, (rows, cols)), shape=(n, n))

    def _second_smallest_eigenvector(self, W: scipy.sparse.csr_matrix,
                                     degrees: np.ndarray) -> Optional[np.ndarray]:
        n = W.shape[0]
        D = scipy.sparse.diags(degrees)
        L = D - W

        if n <= DENSE_SOLVER_MAX_NODES:
            _, eigenvectors = scipy.linalg.eigh(L.toarray(), np.diag(degrees))
            return eigenvectors[:, 1]

        # Symmetric normalized form: D^-1/2 (D - W) D^-1/2 z = lambda z, y = D^-1/2 z
        inv_sqrt_degrees = scipy.sparse.diags(1.0 / np.sqrt(degrees))
        L_sym = inv_sqrt_degrees @ L @ inv_sqrt_degrees
        try:
            eigenvalues, eigenvectors = scipy.sparse.linalg.eigsh(L_sym, k=2, which='SA')
        except scipy.sparse.linalg.ArpackNoConvergence as e:
            logger.warning(f"Graph cut eigensolver did not converge: {e}")
            return None
        order = np.argsort(eigenvalues)
        return inv_sqrt_degrees @ eigenvectors[:, order[1]]

    # =========================================================================
    # Cut selection
    # =========================================================================

    @staticmethod
    def _cut_cost(W: scipy.sparse.csr_matrix, degrees: np.ndarray,
                  y: np.ndarray, cut_value: float) -> float:
        in_first = y > cut_value
        k = degrees[in_first].sum() / degrees.sum()
        if k <= 0.0 or k >= 1.0:
            return np.inf

        # Discretize y to {1, -b} with b = sum_{y > t} d / sum_{y <= t} d
        b = k / (1.0 - k)
        y_discrete = np.where(in_first, 1.0, -b)

        numerator = y_discrete @ (degrees * y_discrete) - y_discrete @ (W @ y_discrete)
        denominator = y_discrete @ (degrees * y_discrete)
        return float(numerator / denominator)

    def _find_optimal_cut(self, W: scipy.sparse.csr_matrix, degrees: np.ndarray,
                          y: np.ndarray) -> Tuple[float, float]:
        sorted_y = np.sort(y)
        quantile1 = sorted_y[len(y) // 4]
        quantile3 = sorted_y[3 * len(y) // 4]

        best_cut_value = 0.0
        best_cost = np.inf
        for cut_value in np.linspace(quantile1, quantile3, self.options.num_cuts_to_test):
            cost = self._cut_cost(W, degrees, y, cut_value)
            logger.debug(f"Cost of cut at {cut_value:.6f} is: {cost:.6f}")
            if cost < best_cost:
                best_cost = cost
                best_cut_value = float(cut_value)

        return best_cut_value, float(best_cost)
