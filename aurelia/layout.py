# /aurelia/layout.py

import math
import random
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set, Tuple

from aurelia.models import Entity, Relationship

BACKBONE_IMPORTANCE_THRESHOLD = 7
BACKBONE_STRENGTH_THRESHOLD = 6


@dataclass(frozen=True)
class LayoutConfig:
    width: float = 800
    height: float = 500
    radius: float = 180
    jitter: float = 50
    repulsion: float = 1000
    repulsion_scale: float = 0.1
    centering: float = 0.001
    spring: float = 0.01
    damping: float = 0.9
    margin: float = 50
    max_steps: int = 100

    @property
    def center(self) -> Tuple[float, float]:
        return self.width / 2, self.height / 2


@dataclass
class NodeState:
    x: float
    y: float
    vx: float = 0.0
    vy: float = 0.0


class ForceSimulation:
    """
    Force-directed layout with all node state owned by the simulation object.

    Nodes start on a circle around the canvas center with a little random jitter.
    Each step applies inverse-square repulsion between every pair, a weak pull to the
    center and a spring pull along every relationship, then integrates with damping
    and clamps to the canvas. After max_steps the simulation stops on its own;
    dragging a node pins it and re-arms the step budget.
    """
    def __init__(
        self,
        node_ids: Iterable[str],
        edges: Iterable[Tuple[str, str]] = (),
        config: Optional[LayoutConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.config = config or LayoutConfig()
        self.rng = rng or random.Random()
        self.node_ids: List[str] = list(dict.fromkeys(node_ids))
        known = set(self.node_ids)
        self.edges: List[Tuple[str, str]] = [(s, t) for s, t in edges if s in known and t in known]
        self.nodes: Dict[str, NodeState] = {}
        self.pinned: Set[str] = set()
        self.steps_taken = 0
        self._budget = self.config.max_steps
        self._initialize_positions()

    @classmethod
    def from_graph(cls, entities: List[Entity], relationships: List[Relationship], **kwargs) -> "ForceSimulation":
        return cls(
            [e.id for e in entities],
            [(r.source_id, r.target_id) for r in relationships],
            **kwargs,
        )

    def _initialize_positions(self):
        cx, cy = self.config.center
        count = len(self.node_ids)
        for i, node_id in enumerate(self.node_ids):
            angle = 2 * math.pi * i / count
            self.nodes[node_id] = NodeState(
                x=cx + self.config.radius * math.cos(angle) + (self.rng.random() - 0.5) * self.config.jitter,
                y=cy + self.config.radius * math.sin(angle) + (self.rng.random() - 0.5) * self.config.jitter,
            )

    @property
    def is_settled(self) -> bool:
        return self._budget <= 0

    def _clamp(self, pos: NodeState):
        cfg = self.config
        pos.x = max(cfg.margin, min(cfg.width - cfg.margin, pos.x))
        pos.y = max(cfg.margin, min(cfg.height - cfg.margin, pos.y))

    def step(self) -> bool:
        """Advances one tick. Returns False once the step budget is spent."""
        if self.is_settled:
            return False

        cfg = self.config
        cx, cy = cfg.center
        for node_id in self.node_ids:
            if node_id in self.pinned:
                continue
            pos = self.nodes[node_id]

            for other_id in self.node_ids:
                if other_id == node_id:
                    continue
                other = self.nodes[other_id]
                dx = pos.x - other.x
                dy = pos.y - other.y
                dist = math.hypot(dx, dy) or 1.0
                force = cfg.repulsion / (dist * dist)
                pos.vx += (dx / dist) * force * cfg.repulsion_scale
                pos.vy += (dy / dist) * force * cfg.repulsion_scale

            pos.vx += (cx - pos.x) * cfg.centering
            pos.vy += (cy - pos.y) * cfg.centering

            for source_id, target_id in self.edges:
                if source_id == node_id:
                    other = self.nodes[target_id]
                elif target_id == node_id:
                    other = self.nodes[source_id]
                else:
                    continue
                pos.vx += (other.x - pos.x) * cfg.spring
                pos.vy += (other.y - pos.y) * cfg.spring

            pos.x += pos.vx
            pos.y += pos.vy
            pos.vx *= cfg.damping
            pos.vy *= cfg.damping
            self._clamp(pos)

        self.steps_taken += 1
        self._budget -= 1
        return True

    def run(self) -> Dict[str, Tuple[float, float]]:
        while self.step():
            pass
        return self.positions()

    def drag(self, node_id: str, x: float, y: float):
        """Moves a node directly; it stays pinned until released."""
        pos = self.nodes[node_id]
        pos.x, pos.y = x, y
        pos.vx = pos.vy = 0.0
        self._clamp(pos)
        self.pinned.add(node_id)
        self._budget = self.config.max_steps

    def release(self, node_id: str):
        self.pinned.discard(node_id)

    def positions(self) -> Dict[str, Tuple[float, float]]:
        return {node_id: (pos.x, pos.y) for node_id, pos in self.nodes.items()}


def backbone_view(entities: List[Entity], relationships: List[Relationship]) -> Tuple[List[Entity], List[Relationship]]:
    """High-importance entities and the strong relationships running between them."""
    backbone = [e for e in entities if e.importance >= BACKBONE_IMPORTANCE_THRESHOLD]
    ids = {e.id for e in backbone}
    strong = [
        r for r in relationships
        if r.strength >= BACKBONE_STRENGTH_THRESHOLD and r.source_id in ids and r.target_id in ids
    ]
    return backbone, strong
