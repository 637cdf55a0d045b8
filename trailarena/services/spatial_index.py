# trailarena/services/spatial_index.py
"""Uniform grid over trail points, rebuilt once per tick."""

from collections import defaultdict
from typing import Dict, Iterable, List, NamedTuple, Tuple

from trailarena.models.entities import Entity, TrailPoint
from trailarena.utils.helpers import cell_key


class IndexedPoint(NamedTuple):
    """A trail point together with where it sits in its owner's trail."""

    x: int
    y: int
    owner_id: str
    index: int
    age: int  # 0 for the owner's newest point


class TrailIndex:
    """Hash grid mapping cell keys to the trail points inside them.

    Lookups are by cell, not by radius: two points collide when they share a
    cell, so precision is bounded by ``cell_size``. Buckets hold plain
    ``(x, y, owner_id, index, age)`` tuples; the index is rebuilt from every
    trail on every tick, so building it has to stay cheap.
    """

    def __init__(self, cell_size: int):
        self.cell_size = cell_size
        self.cells: Dict[Tuple[int, int], List[tuple]] = defaultdict(list)

    @classmethod
    def build(cls, entities: Iterable[Entity], cell_size: int) -> "TrailIndex":
        """Index every trail point of every entity, alive or not."""
        index = cls(cell_size)
        cells = index.cells
        for entity in entities:
            owner_id = entity.id
            newest = len(entity.trail) - 1
            for i, (x, y) in enumerate(entity.trail):
                cells[(x // cell_size, y // cell_size)].append(
                    (x, y, owner_id, i, newest - i)
                )
        return index

    def insert(self, point: TrailPoint, owner_id: str, index: int, age: int = 0):
        """Add a single point; ``age`` counts back from the owner's newest point."""
        key = cell_key(point.x, point.y, self.cell_size)
        self.cells[key].append((point.x, point.y, owner_id, index, age))

    def query(self, x: float, y: float) -> List[IndexedPoint]:
        """All indexed points sharing the cell of (x, y)."""
        bucket = self.cells.get(cell_key(x, y, self.cell_size), ())
        return [IndexedPoint._make(entry) for entry in bucket]

    def first_hazard(self, x: float, y: float, entity_id: str, grace: int):
        """First point in the cell of (x, y) that is lethal for entity_id, or None."""
        for point in self.query(x, y):
            if is_hazard_for(point, entity_id, grace):
                return point
        return None

    def __len__(self):
        return sum(len(bucket) for bucket in self.cells.values())


def is_hazard_for(point: IndexedPoint, entity_id: str, grace: int) -> bool:
    """Every point is lethal except the entity's own newest ``grace`` points."""
    return point.owner_id != entity_id or point.age >= grace
