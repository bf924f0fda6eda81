"""
Edge Sets for Gaussian Graphical Models
=======================================

An EdgeSet records which partial correlations are free parameters
(edges) and which are fixed at zero. It is immutable: every removal or
addition returns a new EdgeSet, so fitted models can safely keep a
reference to the structure they were estimated under.

Only pairs (i, j) with i < j are stored. The adjacency matrix produced
by `to_adjacency()` is therefore symmetric with a zero diagonal.
"""

from itertools import combinations
from typing import FrozenSet, Iterable, Iterator, List, Tuple, Union

import numpy as np

Edge = Tuple[int, int]


def _normalize(edge: Edge, n_nodes: int) -> Edge:
    i, j = int(edge[0]), int(edge[1])
    if i == j:
        raise ValueError(f"Self-loop ({i}, {j}) is not a valid edge")
    if not (0 <= i < n_nodes and 0 <= j < n_nodes):
        raise ValueError(f"Edge ({i}, {j}) out of range for {n_nodes} nodes")
    return (i, j) if i < j else (j, i)


class EdgeSet:
    """
    Immutable set of free off-diagonal partial correlations.

    Example:
        >>> edges = EdgeSet.full(4)
        >>> len(edges)
        6
        >>> sparser = edges.without_edge((0, 3))
        >>> sparser.fixed_edges()
        [(0, 3)]
    """

    __slots__ = ('_n_nodes', '_edges')

    def __init__(self, n_nodes: int, edges: Iterable[Edge] = ()):
        if n_nodes < 1:
            raise ValueError(f"n_nodes must be positive, got {n_nodes}")
        self._n_nodes = int(n_nodes)
        self._edges: FrozenSet[Edge] = frozenset(
            _normalize(e, self._n_nodes) for e in edges
        )

    # -------------------------------------------------------------------------
    # Constructors
    # -------------------------------------------------------------------------

    @classmethod
    def full(cls, n_nodes: int) -> 'EdgeSet':
        """All off-diagonal partial correlations free (saturated model)."""
        return cls(n_nodes, combinations(range(n_nodes), 2))

    @classmethod
    def empty(cls, n_nodes: int) -> 'EdgeSet':
        """No free partial correlations (independence model)."""
        return cls(n_nodes)

    @classmethod
    def from_adjacency(cls, adjacency: Union[np.ndarray, List[List[float]]]) -> 'EdgeSet':
        """
        Build from a square matrix; any non-zero off-diagonal entry is an edge.

        Raises:
            ValueError: If the matrix is not square or its pattern is not symmetric
        """
        adj = np.asarray(adjacency)
        if adj.ndim != 2 or adj.shape[0] != adj.shape[1]:
            raise ValueError(f"Adjacency must be square, got shape {adj.shape}")
        pattern = adj != 0
        if not np.array_equal(pattern, pattern.T):
            raise ValueError("Adjacency pattern must be symmetric")
        n = adj.shape[0]
        return cls(n, ((i, j) for i, j in combinations(range(n), 2) if pattern[i, j]))

    # -------------------------------------------------------------------------
    # Derived sets
    # -------------------------------------------------------------------------

    def with_edge(self, edge: Edge) -> 'EdgeSet':
        return EdgeSet(self._n_nodes, self._edges | {_normalize(edge, self._n_nodes)})

    def without_edge(self, edge: Edge) -> 'EdgeSet':
        return self.without_edges([edge])

    def without_edges(self, edges: Iterable[Edge]) -> 'EdgeSet':
        removed = {_normalize(e, self._n_nodes) for e in edges}
        return EdgeSet(self._n_nodes, self._edges - removed)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def n_nodes(self) -> int:
        return self._n_nodes

    @property
    def n_possible(self) -> int:
        """Number of off-diagonal pairs, p(p-1)/2."""
        return self._n_nodes * (self._n_nodes - 1) // 2

    def free_edges(self) -> List[Edge]:
        """Free edges in row-major order."""
        return sorted(self._edges)

    def fixed_edges(self) -> List[Edge]:
        """Edges fixed at zero, in row-major order."""
        return [e for e in combinations(range(self._n_nodes), 2) if e not in self._edges]

    def degree(self, node: int) -> int:
        return sum(1 for e in self._edges if node in e)

    def degrees(self) -> np.ndarray:
        return self.to_adjacency().sum(axis=1)

    def is_full(self) -> bool:
        return len(self._edges) == self.n_possible

    def issubset(self, other: 'EdgeSet') -> bool:
        return self._n_nodes == other._n_nodes and self._edges <= other._edges

    def issuperset(self, other: 'EdgeSet') -> bool:
        return other.issubset(self)

    def to_adjacency(self) -> np.ndarray:
        """0/1 integer adjacency matrix, symmetric with zero diagonal."""
        adj = np.zeros((self._n_nodes, self._n_nodes), dtype=int)
        for i, j in self._edges:
            adj[i, j] = 1
            adj[j, i] = 1
        return adj

    # -------------------------------------------------------------------------
    # Dunder methods
    # -------------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._edges)

    def __iter__(self) -> Iterator[Edge]:
        return iter(self.free_edges())

    def __contains__(self, edge: Edge) -> bool:
        try:
            return _normalize(edge, self._n_nodes) in self._edges
        except ValueError:
            return False

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EdgeSet):
            return NotImplemented
        return self._n_nodes == other._n_nodes and self._edges == other._edges

    def __hash__(self) -> int:
        return hash((self._n_nodes, self._edges))

    def __repr__(self) -> str:
        return f"EdgeSet(n_nodes={self._n_nodes}, n_edges={len(self._edges)})"
