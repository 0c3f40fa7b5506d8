# history.py
"""Fixed-capacity sample buffers feeding the direction estimator and motion fit."""
from collections import deque
from typing import Deque, Generic, Iterator, List, Optional, Tuple, TypeVar

from energy_aim.common import Point

T = TypeVar("T")


class RingBuffer(Generic[T]):
    """FIFO with a hard capacity. Pushing onto a full buffer evicts the oldest entry."""

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self._items: Deque[T] = deque()

    def push(self, item: T) -> Optional[T]:
        """Append ``item``; returns the evicted entry, if any."""
        evicted = None
        if len(self._items) == self.capacity:
            evicted = self._items.popleft()
        self._items.append(item)
        return evicted

    def clear(self) -> None:
        self._items.clear()

    def full(self) -> bool:
        return len(self._items) == self.capacity

    def latest(self) -> Optional[T]:
        return self._items[-1] if self._items else None

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[T]:
        return iter(self._items)

    def __getitem__(self, idx: int) -> T:
        return self._items[idx]

    def to_list(self) -> List[T]:
        return list(self._items)


class AngleHistory:
    """
    Parallel buffers of the last few smoothed armor observations:
    angle about the rotation center, armor position relative to that center
    (maths frame, y up) and capture time. ``speeds`` holds the angular-speed
    increments derived from consecutive observations.
    """

    def __init__(self, capacity: int = 3, speed_capacity: int = 3):
        self.angles: RingBuffer[float] = RingBuffer(capacity)
        self.points: RingBuffer[Point] = RingBuffer(capacity)
        self.stamps: RingBuffer[float] = RingBuffer(capacity)
        self.speeds: RingBuffer[Tuple[float, float]] = RingBuffer(speed_capacity)  # (t, rad/s)

    def push(self, angle: float, point: Point, stamp: float) -> Optional[float]:
        """
        Store one observation. Returns the angular-speed magnitude against the
        previous observation, or None when there is no usable predecessor.
        """
        prev_angle = self.angles.latest()
        prev_stamp = self.stamps.latest()
        self.angles.push(angle)
        self.points.push(point)
        self.stamps.push(stamp)
        if prev_angle is None or prev_stamp is None:
            return None
        dt = stamp - prev_stamp
        if dt <= 0.0:
            return None
        speed = abs(angle - prev_angle) / dt
        self.speeds.push((0.5 * (stamp + prev_stamp), speed))
        return speed

    def deltas(self) -> List[float]:
        """Signed angle changes between consecutive stored observations."""
        angles = self.angles.to_list()
        return [b - a for a, b in zip(angles, angles[1:])]

    def clear(self) -> None:
        """Forget observations; speed increments belong to the motion fit and stay."""
        self.angles.clear()
        self.points.clear()
        self.stamps.clear()

    def clear_all(self) -> None:
        self.clear()
        self.speeds.clear()

    def __len__(self) -> int:
        return len(self.angles)
