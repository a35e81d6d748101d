"""
Hex Grid Geometry

Pure helpers over axial coordinates (q, r) on a flat-top hexagonal grid.
The grid is centred on (0, 0); a grid of radius R holds every cell whose
cube coordinates (q, r, -q-r) all lie within [-R, R].
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Set


@dataclass(frozen=True)
class Hex:
    """A cell in axial coordinates"""
    q: int
    r: int

    def neighbor(self, direction: str) -> 'Hex':
        offset = HEX_DIRECTIONS[direction]
        return Hex(self.q + offset.q, self.r + offset.r)

    def to_dict(self) -> dict:
        return {'q': self.q, 'r': self.r}

    @classmethod
    def from_dict(cls, data: dict) -> 'Hex':
        return cls(int(data['q']), int(data['r']))


CENTER = Hex(0, 0)

# Unit offsets per direction (order matters: it is the scan order everywhere)
HEX_DIRECTIONS: Dict[str, Hex] = {
    'n': Hex(0, -1),
    'ne': Hex(1, -1),
    'se': Hex(1, 0),
    's': Hex(0, 1),
    'sw': Hex(-1, 1),
    'nw': Hex(-1, 0),
}

OPPOSITE_DIRECTIONS: Dict[str, str] = {
    'n': 's', 's': 'n',
    'ne': 'sw', 'sw': 'ne',
    'se': 'nw', 'nw': 'se',
}

ALL_DIRECTIONS: List[str] = list(HEX_DIRECTIONS)


def is_in_bounds(cell: Hex, radius: int) -> bool:
    """True if the cell lies on a hex grid of the given radius"""
    return abs(cell.q) <= radius and abs(cell.r) <= radius and abs(cell.q + cell.r) <= radius


def hex_distance(a: Hex, b: Hex) -> int:
    """
    Number of steps between two cells.

    With dq = a.q - b.q and dr = a.r - b.r the cube delta is (dq, dr, -dq-dr),
    so the distance is max(|dq|, |dr|, |dq + dr|).
    """
    dq = a.q - b.q
    dr = a.r - b.r
    return max(abs(dq), abs(dr), abs(dq + dr))


def is_on_body(cell: Hex, body: Iterable[Hex]) -> bool:
    return cell in set(body)


def count_exits(cell: Hex, body: Iterable[Hex], radius: int,
                exclude_direction: Optional[str] = None) -> int:
    """
    Count free neighbours of a cell (safety metric).

    A neighbour is free when it is in bounds and not covered by the body.
    exclude_direction skips one direction, normally the reverse of the move
    that led to this cell.
    """
    occupied: Set[Hex] = set(body)
    exits = 0
    for direction in ALL_DIRECTIONS:
        if direction == exclude_direction:
            continue
        neighbor = cell.neighbor(direction)
        if not is_in_bounds(neighbor, radius):
            continue
        if neighbor in occupied:
            continue
        exits += 1
    return exits


def valid_directions(body: List[Hex], radius: int) -> List[str]:
    """
    Directions the head can move without leaving the grid or hitting itself.

    The head itself is not an obstacle; every other segment is, which also
    rules out reversing into the segment just behind the head.
    """
    if not body:
        return []
    head = body[0]
    occupied = set(body[1:])
    result = []
    for direction in ALL_DIRECTIONS:
        target = head.neighbor(direction)
        if not is_in_bounds(target, radius):
            continue
        if target in occupied:
            continue
        result.append(direction)
    return result


def best_direction_toward(head: Hex, target: Hex, directions: Iterable[str]) -> Optional[str]:
    """Direction that ends closest to target (first one wins ties)"""
    best = None
    best_dist = None
    for direction in directions:
        dist = hex_distance(head.neighbor(direction), target)
        if best_dist is None or dist < best_dist:
            best = direction
            best_dist = dist
    return best
