"""
Circular Dependency Detection

Builds a directed graph of snippets across all stores and finds reference cycles
with a depth-first search.

Key Features:
- Nodes are store-qualified snippet identities ("storeId:snippetId")
- Edges are dependencies that resolve; unresolvable ones just end a branch
- Every distinct cycle is reported once, however many start points reach it
- Branch depth is capped so pathological chains always terminate
- Topological ordering (Kahn's algorithm) for safe expansion order
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from .dependency import parse_dependency
from .errors import Deadline
from .snippet import Snippet, StoreSnapshot, qualify

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 50


@dataclass
class CycleReport:
    """Result of cycle detection"""
    has_cycles: bool = False
    cycles: List[List[str]] = field(default_factory=list)
    affected_snippets: List[str] = field(default_factory=list)
    dependency_chains: Dict[str, List[str]] = field(default_factory=dict)
    checks: int = 0
    depth_limited: bool = False


class _SnippetGraph:
    """Adjacency view over a snapshot, with some nodes overridden by caller-supplied snippets"""

    def __init__(self, snapshot: StoreSnapshot, overrides: Dict[str, Snippet]):
        self.snapshot = snapshot
        self.overrides = overrides
        self._edges: Dict[str, List[str]] = {}
        self.chains: Dict[str, List[str]] = {}

    def lookup(self, store_id: str, snippet_id: str) -> Optional[Snippet]:
        node = qualify(store_id, snippet_id)
        if node in self.overrides:
            return self.overrides[node]
        return self.snapshot.find_snippet(store_id, snippet_id)

    def neighbors(self, node: str) -> List[str]:
        if node in self._edges:
            return self._edges[node]

        store_id, snippet_id = node.split(":", 1)
        snippet = self.lookup(store_id, snippet_id)
        targets = []
        if snippet is not None:
            self.chains[node] = list(snippet.dependencies)
            for token in snippet.dependencies:
                parsed = parse_dependency(token)
                if not parsed.is_valid:
                    continue
                if self.lookup(parsed.store_id, parsed.snippet_id) is None:
                    continue
                target = qualify(parsed.store_id, parsed.snippet_id)
                if target not in targets:
                    targets.append(target)

        self._edges[node] = targets
        return targets


def _canonical(cycle: List[str]) -> Tuple[str, ...]:
    """Rotation-independent key for a closed cycle path"""
    nodes = cycle[:-1]
    start = nodes.index(min(nodes))
    return tuple(nodes[start:] + nodes[:start])


def detect_circular_dependencies(snippets: Iterable[Snippet], snapshot: StoreSnapshot,
                                 max_depth: int = DEFAULT_MAX_DEPTH,
                                 default_store_id: Optional[str] = None,
                                 deadline: Optional[Deadline] = None) -> CycleReport:
    """
    Detect dependency cycles reachable from the given snippets.

    Each cycle is the DFS stack slice from the revisited node back to itself, so it
    starts and ends with the same identity.

    Args:
        snippets: Starting snippets; they replace the snapshot's copy of the same node
        snapshot: Stores used to follow edges
        max_depth: Maximum DFS path length before a branch is abandoned
        default_store_id: Store assumed for snippets without a store_id
        deadline: Optional cooperative deadline checked at each step

    Returns:
        CycleReport with one entry per distinct cycle

    Raises:
        ValidationTimeoutError: If the deadline passes during traversal

    Example:
        >>> # A -> B -> A
        >>> snapshot = StoreSnapshot.from_dict({"s": [
        ...     {"id": "A", "dependencies": ["s:;b:B"]},
        ...     {"id": "B", "dependencies": ["s:;a:A"]}]})
        >>> detect_circular_dependencies(snapshot["s"].snippets, snapshot).cycles
        [['s:A', 's:B', 's:A']]
    """
    report = CycleReport()

    starts = []
    overrides: Dict[str, Snippet] = {}
    for snippet in snippets:
        node = snippet.qualified_id(default_store_id)
        if node not in overrides:
            overrides[node] = snippet
            starts.append(node)

    graph = _SnippetGraph(snapshot, overrides)

    visited: Set[str] = set()
    recursion_stack: Set[str] = set()
    path: List[str] = []
    seen_cycles: Set[Tuple[str, ...]] = set()

    def dfs(node: str) -> None:
        """DFS helper; records every back edge as a cycle"""
        if deadline is not None:
            deadline.check()
        report.checks += 1

        if node in recursion_stack:
            cycle_start_index = path.index(node)
            cycle_path = path[cycle_start_index:] + [node]
            key = _canonical(cycle_path)
            if key not in seen_cycles:
                seen_cycles.add(key)
                report.cycles.append(cycle_path)
            return

        if node in visited:
            return

        if len(path) >= max_depth:
            report.depth_limited = True
            logger.debug(f"Cycle search stopped at depth {len(path)} below '{node}'")
            return

        visited.add(node)
        recursion_stack.add(node)
        path.append(node)

        for neighbor in graph.neighbors(node):
            dfs(neighbor)

        recursion_stack.remove(node)
        path.pop()

    for node in starts:
        if node not in visited:
            dfs(node)

    affected: List[str] = []
    for cycle in report.cycles:
        for node in cycle:
            if node not in affected:
                affected.append(node)

    report.has_cycles = bool(report.cycles)
    report.affected_snippets = affected
    report.dependency_chains = graph.chains
    return report


def get_safe_resolution_order(snapshot: StoreSnapshot) -> Tuple[List[str], List[str]]:
    """
    Get a topological order in which snippets can be expanded safely.

    Uses Kahn's algorithm: every snippet comes after the snippets it depends on.
    Snippets caught in (or behind) a cycle cannot be ordered.

    Args:
        snapshot: Stores to order

    Returns:
        Tuple of (safe_order, blocked) as qualified ids

    Example:
        >>> snapshot = StoreSnapshot.from_dict({"s": [
        ...     {"id": "A", "dependencies": ["s:;b:B"]}, {"id": "B"}]})
        >>> get_safe_resolution_order(snapshot)
        (['s:B', 's:A'], [])
    """
    graph = _SnippetGraph(snapshot, {})

    nodes: List[str] = []
    for store_id, snippet in snapshot.iter_snippets():
        node = qualify(store_id, snippet.id)
        if node not in nodes:
            nodes.append(node)

    forward_graph: Dict[str, List[str]] = defaultdict(list)
    in_degree: Dict[str, int] = {node: 0 for node in nodes}

    for node in nodes:
        for dependency in graph.neighbors(node):
            forward_graph[dependency].append(node)
            in_degree[node] += 1

    queue = deque(node for node in nodes if in_degree[node] == 0)
    safe_order = []

    while queue:
        current = queue.popleft()
        safe_order.append(current)
        for dependent in forward_graph[current]:
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    ordered = set(safe_order)
    blocked = [node for node in nodes if node not in ordered]
    if blocked:
        logger.warning(f"Cannot order {len(blocked)} snippets - circular dependencies detected: {blocked}")

    return safe_order, blocked
