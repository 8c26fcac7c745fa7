"""
2D R-tree over record bounding boxes (thin wrapper around `rtree`).

Keeps the `rtree` dependency in one place and serialises queries behind a
lock, since libspatialindex handles are not safe for concurrent reads.
"""

import threading
from typing import List, Optional, Sequence, Tuple

from rtree import index

from cad_drawing.geometry.primitives import Bounds


_rtree_lock = threading.Lock()


def build_rtree_index(boxes: Sequence[Optional[Bounds]]) -> index.Index:
    """Build a 2D R-tree from a list of boxes.

    The position of each box in ``boxes`` is its id in the index, so the
    caller keeps a parallel list mapping positions back to record ids.
    ``None`` entries (geometry without bounds) are skipped. Inverted
    boxes are stored normalised (rtree requires min <= max).

    Args:
        boxes: Bounding boxes, one per record.

    Returns:
        Populated 2D rtree Index.
    """
    props = index.Property()
    props.dimension = 2
    rtree_idx = index.Index(properties=props)

    for position, box in enumerate(boxes):
        if box is not None:
            rtree_idx.insert(position, box.normalized().as_tuple())

    return rtree_idx


def query_rtree(spatial_idx: index.Index,
                bounds: Tuple[float, float, float, float]) -> List[int]:
    """Positions of all boxes intersecting ``(min_x, min_y, max_x, max_y)``.

    Touching boxes count as intersecting. The result is sorted so callers
    see a stable order.
    """
    with _rtree_lock:
        return sorted(spatial_idx.intersection(bounds))
