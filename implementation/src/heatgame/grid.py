from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from heatgame.types import Cell, StructureType

logger = logging.getLogger(__name__)


@dataclass
class GridManager:
    """Square grid of cells stored row-major as one flat list.

    The manager is the only owner of :class:`Cell` objects. ``get_cell`` hands
    out copies; ``get_cell_ref`` returns the live cell and is meant for the
    physics engine and the game orchestrator only.
    """

    size: int
    cells: List[Cell] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self.cells = [self.create_empty_cell(x, y) for y in range(self.size) for x in range(self.size)]

    @staticmethod
    def create_empty_cell(x: int, y: int) -> Cell:
        return Cell(x=x, y=y)

    def index(self, x: int, y: int) -> int:
        if not self.in_bounds(x, y):
            raise IndexError(f"Grid index out of bounds: ({x}, {y})")
        return y * self.size + x

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.size and 0 <= y < self.size

    def get_size(self) -> int:
        return self.size

    def get_cell(self, x: int, y: int) -> Optional[Cell]:
        cell = self.get_cell_ref(x, y)
        return cell.copy() if cell is not None else None

    def get_cell_ref(self, x: int, y: int) -> Optional[Cell]:
        if not self.in_bounds(x, y):
            return None
        return self.cells[y * self.size + x]

    def get_snapshot(self) -> List[List[Cell]]:
        return [
            [self.cells[y * self.size + x].copy() for x in range(self.size)]
            for y in range(self.size)
        ]

    def iter_cells(self) -> Iterable[Tuple[int, int, Cell]]:
        for y in range(self.size):
            for x in range(self.size):
                yield x, y, self.cells[y * self.size + x]

    def neighbor_coords(self, x: int, y: int) -> List[Tuple[int, int]]:
        # Order is fixed: up, down, left, right.
        coords: List[Tuple[int, int]] = []
        if y > 0:
            coords.append((x, y - 1))
        if y < self.size - 1:
            coords.append((x, y + 1))
        if x > 0:
            coords.append((x - 1, y))
        if x < self.size - 1:
            coords.append((x + 1, y))
        return coords

    def get_neighbors(self, x: int, y: int) -> List[Cell]:
        return [self.cells[ny * self.size + nx] for nx, ny in self.neighbor_coords(x, y)]

    def count_adjacent_fuel_rods(self, x: int, y: int) -> int:
        """Neighbors that are fuel rods with lifetime left; spent rods give no bonus."""
        return sum(1 for n in self.get_neighbors(x, y) if n.is_active_fuel)

    def get_filled_cell_count(self) -> int:
        return sum(1 for cell in self.cells if cell.structure is not StructureType.EMPTY)

    def expand_grid(self, new_size: int, max_size: int) -> bool:
        """Grow to ``new_size``, keeping every existing cell at its (x, y)."""
        if new_size <= self.size or new_size > max_size:
            return False
        old_size = self.size
        old_cells = self.cells
        self.size = new_size
        self.cells = [self.create_empty_cell(x, y) for y in range(new_size) for x in range(new_size)]
        for y in range(old_size):
            for x in range(old_size):
                self.cells[y * new_size + x] = old_cells[y * old_size + x]
        logger.info("Grid expanded from %dx%d to %dx%d", old_size, old_size, new_size, new_size)
        return True

    def reset_cell(self, x: int, y: int) -> None:
        self.cells[self.index(x, y)] = self.create_empty_cell(x, y)

    def clear_all(self) -> None:
        self.__post_init__()

    def restore_from_state(self, rows: Sequence[Sequence[Cell]], size: int) -> None:
        """Adopt a saved grid. Missing rows or cells become empty tiles."""
        self.size = size
        self.__post_init__()
        for y, row in enumerate(rows[:size]):
            for x, cell in enumerate(row[:size]):
                restored = cell.copy()
                restored.x = x
                restored.y = y
                self.cells[y * size + x] = restored
