"""
Graph layout for the student knowledge map.

Force-directed positions from networkx, seeded so the same graph always
lands in the same place. Positions a student dragged by hand win.
"""

from typing import Dict, Optional, Tuple

import networkx as nx

from .knowledge_graph import KnowledgeGraph

Position = Tuple[float, float]


def compute_layout(
    kg: KnowledgeGraph,
    overrides: Optional[Dict[str, Position]] = None,
    seed: int = 42,
    scale: float = 500.0,
) -> Dict[str, Position]:
    """Return concept_id -> (x, y) for every concept in the graph."""
    overrides = overrides or {}
    if not kg.concepts:
        return {}

    # Collapse parallel edges; keep the strongest as the spring weight
    simple = nx.Graph()
    simple.add_nodes_from(sorted(kg.concepts))
    for edge in kg.get_edges():
        current = simple.get_edge_data(edge.source, edge.target, default={}).get("weight", 0.0)
        simple.add_edge(edge.source, edge.target, weight=max(current, edge.strength))

    fixed = [cid for cid in overrides if cid in simple]
    pos = {cid: overrides[cid] for cid in fixed}
    if len(fixed) == len(simple):
        return {cid: (round(float(x), 2), round(float(y), 2)) for cid, (x, y) in pos.items()}

    layout = nx.spring_layout(
        simple,
        pos=pos or None,
        fixed=fixed or None,
        weight="weight",
        seed=seed,
        scale=None if fixed else scale,
    )
    return {cid: (round(float(x), 2), round(float(y), 2)) for cid, (x, y) in layout.items()}
