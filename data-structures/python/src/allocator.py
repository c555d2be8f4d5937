"""
Allocators -- storage providers for DynamicArray.

An allocator separates memory acquisition from object lifetime. ``allocate``
hands out a contiguous NumPy block of raw slots and ``deallocate`` takes it
back; ``construct``/``move_construct``/``emplace`` start an element's lifetime
inside a slot and ``destroy`` ends it. The container drives every one of these
calls itself, so swapping the allocator changes where elements live (an object
block, a typed float64 block, an instrumented block) without touching the
container's growth or exception-safety logic.
"""

import copy
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

import numpy as np

logger = logging.getLogger(__name__)


class AllocationError(MemoryError):
    """Raised when an allocator cannot provide the requested storage."""


class Allocator(ABC):
    """Base class for allocation strategies used by DynamicArray."""

    @abstractmethod
    def allocate(self, n: int) -> np.ndarray:
        """Return a contiguous block with room for ``n`` elements."""
        pass

    @abstractmethod
    def deallocate(self, block: np.ndarray, n: int) -> None:
        """Release a block previously obtained from ``allocate(n)``."""
        pass

    @abstractmethod
    def construct(self, block: np.ndarray, index: int, value: Any) -> None:
        """Copy-construct ``value`` into ``block[index]``."""
        pass

    @abstractmethod
    def destroy(self, block: np.ndarray, index: int) -> None:
        """End the lifetime of the element held in ``block[index]``."""
        pass

    @abstractmethod
    def max_size(self) -> int:
        """Largest number of elements a single block may hold."""
        pass

    def default_value(self) -> Any:
        """Value a default-constructed element starts from."""
        return None

    def move_construct(self, block: np.ndarray, index: int, value: Any) -> None:
        """Construct ``block[index]`` by taking over ``value`` without copying."""
        block[index] = value

    def emplace(
        self, block: np.ndarray, index: int, factory: Callable[..., Any], *args, **kwargs
    ) -> None:
        """Construct ``factory(*args, **kwargs)`` directly in ``block[index]``."""
        block[index] = factory(*args, **kwargs)


class DefaultAllocator(Allocator):
    """NumPy-backed allocator.

    Blocks are 1-D ``np.ndarray`` objects of the configured dtype. With the
    default ``object`` dtype any Python value can be stored; a numeric dtype
    gives a packed, typed block and conversion errors surface as construction
    failures.
    """

    def __init__(self, dtype=object):
        self._dtype = np.dtype(dtype)

    @property
    def dtype(self) -> np.dtype:
        return self._dtype

    def allocate(self, n: int) -> np.ndarray:
        if n < 0:
            raise ValueError(f"allocation size must be non-negative, got {n}")
        if n > self.max_size():
            raise AllocationError(
                f"cannot allocate {n} elements of {self._dtype} "
                f"(max_size is {self.max_size()})"
            )
        try:
            return np.empty(n, dtype=self._dtype)
        except (MemoryError, ValueError) as exc:
            raise AllocationError(
                f"cannot allocate {n} elements of {self._dtype}"
            ) from exc

    def deallocate(self, block: np.ndarray, n: int) -> None:
        if len(block) != n:
            raise ValueError(
                f"deallocate called with n={n} for a block of {len(block)} slots"
            )

    def construct(self, block: np.ndarray, index: int, value: Any) -> None:
        block[index] = copy.copy(value)

    def default_value(self) -> Any:
        # zero of the scalar type for numeric blocks
        if self._dtype.hasobject:
            return None
        return self._dtype.type()

    def destroy(self, block: np.ndarray, index: int) -> None:
        # Numeric slots hold no references; nothing to release.
        if self._dtype.hasobject:
            block[index] = None

    def max_size(self) -> int:
        return int(np.iinfo(np.intp).max) // max(self._dtype.itemsize, 1)

    def __eq__(self, other):
        if not isinstance(other, DefaultAllocator):
            return NotImplemented
        return type(self) is type(other) and self._dtype == other._dtype

    def __hash__(self):
        return hash((type(self), self._dtype))

    def __repr__(self):
        return f"{type(self).__name__}(dtype={self._dtype})"


@dataclass
class AllocationStats:
    """Running totals recorded by a TrackingAllocator."""

    allocations: int = 0
    deallocations: int = 0
    constructions: int = 0
    destructions: int = 0
    slots_in_use: int = 0

    @property
    def blocks_in_use(self) -> int:
        return self.allocations - self.deallocations

    @property
    def live_elements(self) -> int:
        return self.constructions - self.destructions


class TrackingAllocator(DefaultAllocator):
    """DefaultAllocator that records every call in an AllocationStats ledger.

    Copies made with ``copy.copy`` share the ledger, so a container and its
    copies report into the same totals. Counters are only bumped after the
    underlying call succeeds.
    """

    def __init__(self, dtype=object, stats=None):
        super().__init__(dtype)
        self.stats = stats if stats is not None else AllocationStats()

    def allocate(self, n: int) -> np.ndarray:
        block = super().allocate(n)
        self.stats.allocations += 1
        self.stats.slots_in_use += n
        logger.debug("allocated block of %d slots", n)
        return block

    def deallocate(self, block: np.ndarray, n: int) -> None:
        super().deallocate(block, n)
        self.stats.deallocations += 1
        self.stats.slots_in_use -= n
        logger.debug("released block of %d slots", n)

    def construct(self, block: np.ndarray, index: int, value: Any) -> None:
        super().construct(block, index, value)
        self.stats.constructions += 1

    def move_construct(self, block: np.ndarray, index: int, value: Any) -> None:
        super().move_construct(block, index, value)
        self.stats.constructions += 1

    def emplace(self, block, index, factory, *args, **kwargs):
        super().emplace(block, index, factory, *args, **kwargs)
        self.stats.constructions += 1

    def destroy(self, block: np.ndarray, index: int) -> None:
        super().destroy(block, index)
        self.stats.destructions += 1

    def leaked(self) -> bool:
        """True if any block or element obtained through this ledger is still outstanding."""
        return self.stats.blocks_in_use != 0 or self.stats.live_elements != 0

    def __eq__(self, other):
        if not isinstance(other, TrackingAllocator):
            return NotImplemented
        return self.stats is other.stats and self._dtype == other._dtype

    def __hash__(self):
        return hash((type(self), id(self.stats)))
