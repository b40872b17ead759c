"""
Group dependency ordering.

Groups are applied so that every group comes after the groups it embeds.
Only direct nested-group references form edges; transitive flattening is the
membership resolver's job.
"""

import logging
from typing import Dict, List, Mapping

from ldap_enforcer.model import Group

logger = logging.getLogger(__name__)


def dependency_graph(groups: Mapping[str, Group]) -> Dict[str, List[str]]:
    """Map each group to the configured groups it embeds directly."""
    graph = {}
    for name in sorted(groups):
        seen = []
        for nested in groups[name].groups:
            if nested in groups and nested not in seen:
                seen.append(nested)
        graph[name] = sorted(seen)
    return graph


def _walk(graph: Dict[str, List[str]]):
    """Depth-first walk returning (post-order, cycles)."""
    order: List[str] = []
    cycles: List[List[str]] = []
    done = set()
    on_stack: List[str] = []

    def visit(name: str):
        on_stack.append(name)
        for dependency in graph[name]:
            if dependency in done:
                continue
            if dependency in on_stack:
                # Cyclic edge: treat as already satisfied.
                cycles.append(on_stack[on_stack.index(dependency):] + [dependency])
                continue
            visit(dependency)
        on_stack.pop()
        done.add(name)
        order.append(name)

    for name in graph:
        if name not in done:
            visit(name)
    return order, cycles


def order_groups(groups: Mapping[str, Group]) -> List[str]:
    """
    Order groups so each one follows every group it embeds.

    A dependency cycle does not abort the sort. It is logged and the edge that
    closes the cycle is ignored, which still yields a usable order for the
    rest of the graph.

    Args:
        groups: Configured groups keyed by name

    Returns:
        Every group name exactly once
    """
    order, cycles = _walk(dependency_graph(groups))
    for cycle in cycles:
        logger.warning(f"Group dependency cycle ignored for ordering: {' -> '.join(cycle)}")
    return order


def find_cycles(groups: Mapping[str, Group]) -> List[List[str]]:
    """Nested-group cycles, each as a path that starts and ends on the same group."""
    return _walk(dependency_graph(groups))[1]
