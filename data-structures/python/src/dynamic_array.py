"""
Dynamic Array -- growable contiguous container over a pluggable allocator.

Elements live in a single block obtained from an Allocator. Slots [0, size)
hold constructed elements; slots [size, capacity) are raw. Appends double the
capacity when the block is full, so N appends cost O(log N) reallocations.

Every operation that replaces the block builds the complete replacement first
and only then releases the old one. If a construction fails part-way, the
elements already built in the new block are destroyed, the new block is
released, and the exception propagates with the container untouched.
"""

import copy
import logging

import numpy as np

from allocator import DefaultAllocator

logger = logging.getLogger(__name__)

_UNSET = object()


def _elements_equal(a, b):
    if isinstance(a, np.ndarray) or isinstance(b, np.ndarray):
        return np.array_equal(a, b)
    return bool(a == b)


class DynamicArray:
    def __init__(self, size=0, value=_UNSET, allocator=None, element_type=None):
        if not isinstance(size, int) or isinstance(size, bool) or size < 0:
            raise ValueError("size must be a non-negative integer")
        self._allocator = allocator if allocator is not None else DefaultAllocator()
        self._element_type = element_type
        self._storage = None
        self._size = 0
        self._capacity = 0
        if size > 0:
            fill = self._default_element() if value is _UNSET else value
            self._storage = self._build_block(
                size, size, lambda block, i: self._allocator.construct(block, i, fill)
            )
            self._size = self._capacity = size

    @classmethod
    def from_iterable(cls, items, allocator=None, element_type=None):
        """Build an array whose capacity equals the number of items, in order."""
        items = list(items)
        arr = cls(allocator=allocator, element_type=element_type)
        if items:
            arr._storage = arr._build_block(
                len(items),
                len(items),
                lambda block, i: arr._allocator.construct(block, i, items[i]),
            )
            arr._size = arr._capacity = len(items)
        return arr

    @classmethod
    def moved_from(cls, other):
        """Take over other's block and allocator, leaving other empty.

        No elements are copied. other ends with size 0, capacity 0, no storage
        and a default-constructed allocator of the same class.
        """
        arr = cls(allocator=other._allocator, element_type=other._element_type)
        arr._storage, arr._size, arr._capacity = other._storage, other._size, other._capacity
        other._storage, other._size, other._capacity = None, 0, 0
        other._allocator = type(other._allocator)()
        return arr

    # -- assignment ---------------------------------------------------------

    def copy_assign(self, other):
        """Replace contents with an independent copy of other's.

        The replacement is built with a copy of other's allocator before the
        current block is released; if that fails self is left unchanged.
        """
        if self is other:
            return self
        allocator = copy.copy(other._allocator)
        block = self._copy_block(other, allocator)
        self._release(self._storage, self._size, self._capacity, self._allocator)
        self._storage = block
        self._size = other._size
        self._capacity = other._capacity
        self._allocator = allocator
        self._element_type = other._element_type
        return self

    def move_assign(self, other):
        if self is other:
            return self
        self._release(self._storage, self._size, self._capacity, self._allocator)
        self._storage, self._size, self._capacity = None, 0, 0
        self._swap_state(other)
        self._allocator = other._allocator
        self._element_type = other._element_type
        other._allocator = type(other._allocator)()
        return self

    # -- element access -----------------------------------------------------

    def at(self, index):
        if index < 0 or index >= self._size:
            raise IndexError("DynamicArray.at: index out of range")
        return self._storage[index]

    def set_at(self, index, value):
        if index < 0 or index >= self._size:
            raise IndexError("DynamicArray.set_at: index out of range")
        self._storage[index] = value

    def __getitem__(self, index):
        if self._storage is None:
            raise IndexError("DynamicArray: no storage allocated")
        return self._storage[index]

    def __setitem__(self, index, value):
        if self._storage is None:
            raise IndexError("DynamicArray: no storage allocated")
        self._storage[index] = value

    def front(self):
        if self._size == 0:
            raise IndexError("DynamicArray.front: array is empty")
        return self._storage[0]

    def back(self):
        if self._size == 0:
            raise IndexError("DynamicArray.back: array is empty")
        return self._storage[self._size - 1]

    def data(self):
        """View of the live slots; writes through to the array. None without storage."""
        if self._storage is None:
            return None
        return self._storage[:self._size]

    def begin(self):
        return 0

    def end(self):
        return self._size

    # -- capacity -----------------------------------------------------------

    def size(self):
        return self._size

    def capacity(self):
        return self._capacity

    def empty(self):
        return self._size == 0

    def max_size(self):
        return self._allocator.max_size()

    def get_allocator(self):
        return self._allocator

    def reserve(self, new_cap):
        if new_cap < self._capacity or new_cap == 0:
            return
        self._reallocate(new_cap)

    def shrink_to_fit(self):
        if self._size == self._capacity:
            return
        self._reallocate(self._size)

    # -- modifiers ----------------------------------------------------------

    def clear(self):
        for i in range(self._size):
            self._allocator.destroy(self._storage, i)
        self._size = 0

    def push_back(self, value, move=False):
        """Append value, copying it unless move is set."""
        self._grow_if_full()
        if move:
            self._allocator.move_construct(self._storage, self._size, value)
        else:
            self._allocator.construct(self._storage, self._size, value)
        self._size += 1

    def insert(self, pos, value):
        """Insert value before pos and return its position.

        Returns None, without modifying the array, when pos lies outside
        [begin(), end()].
        """
        if pos == self._size:
            self.push_back(value)
            return self._size - 1
        if pos < 0 or pos > self._size:
            return None

        old, size = self._storage, self._size
        allocator = self._allocator

        def place(block, i):
            if i < pos:
                allocator.move_construct(block, i, old[i])
            elif i == pos:
                allocator.construct(block, i, value)
            else:
                allocator.move_construct(block, i, old[i - 1])

        # one extra slot, doubled when the grown block would start out full
        new_cap = self._capacity + 1
        if size + 1 == new_cap:
            new_cap *= 2
        block = self._build_block(size + 1, new_cap, place)
        self._release(old, size, self._capacity, allocator)
        self._storage = block
        self._capacity = new_cap
        self._size += 1
        return pos

    def erase(self, pos):
        if pos < 0 or pos >= self._size:
            raise IndexError("DynamicArray.erase: position out of range")

        old, size = self._storage, self._size
        allocator = self._allocator

        def place(block, i):
            allocator.move_construct(block, i, old[i] if i < pos else old[i + 1])

        block = self._build_block(size - 1, self._capacity, place)
        self._release(old, size, self._capacity, allocator)
        self._storage = block
        self._size -= 1

    def pop_back(self):
        if self._size == 0:
            raise IndexError("DynamicArray.pop_back: array is empty")
        self._allocator.destroy(self._storage, self._size - 1)
        self._size -= 1

    def resize(self, count, value=_UNSET):
        if not isinstance(count, int) or count < 0:
            raise ValueError("count must be a non-negative integer")
        if count > self._capacity:
            self.reserve(count)
        while self._size > count:
            self.pop_back()
        if self._size == count:
            return

        fill = self._default_element() if value is _UNSET else value
        start = self._size
        try:
            while self._size < count:
                self._allocator.construct(self._storage, self._size, fill)
                self._size += 1
        except BaseException:
            while self._size > start:
                self.pop_back()
            raise

    def swap(self, other):
        self._swap_state(other)
        self._allocator, other._allocator = other._allocator, self._allocator
        self._element_type, other._element_type = other._element_type, self._element_type

    def insert_many_back(self, *values):
        """Append each value in turn and return the last one stored."""
        if not values:
            raise ValueError("DynamicArray.insert_many_back: at least one value required")
        for value in values:
            self.push_back(value)
        return self._storage[self._size - 1]

    def insert_many(self, pos, *values):
        if pos != self._size:
            raise NotImplementedError(
                "DynamicArray.insert_many: only the end position is supported"
            )
        self.insert_many_back(*values)
        return self._size - 1

    def emplace_back(self, *args, **kwargs):
        """Build element_type(*args, **kwargs) directly in the next slot."""
        if self._element_type is None:
            raise TypeError("DynamicArray.emplace_back: array has no element_type")
        self._grow_if_full()
        self._allocator.emplace(
            self._storage, self._size, self._element_type, *args, **kwargs
        )
        self._size += 1
        return self._storage[self._size - 1]

    # -- lifetime -----------------------------------------------------------

    def dispose(self):
        """Destroy all elements and give the block back to the allocator."""
        self._release(self._storage, self._size, self._capacity, self._allocator)
        self._storage, self._size, self._capacity = None, 0, 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.dispose()
        return False

    # -- copying ------------------------------------------------------------

    def copy(self):
        """Deep-structure copy: fresh block, same capacity, copied elements."""
        allocator = copy.copy(self._allocator)
        clone = type(self)(allocator=allocator, element_type=self._element_type)
        clone._storage = clone._copy_block(self, allocator)
        clone._size = self._size
        clone._capacity = self._capacity
        return clone

    def __copy__(self):
        return self.copy()

    def __deepcopy__(self, memo):
        allocator = copy.copy(self._allocator)
        clone = type(self)(allocator=allocator, element_type=self._element_type)
        memo[id(self)] = clone
        if self._storage is not None:
            src = self._storage
            clone._storage = clone._build_block(
                self._size,
                self._capacity,
                lambda block, i: allocator.move_construct(
                    block, i, copy.deepcopy(src[i], memo)
                ),
            )
        clone._size = self._size
        clone._capacity = self._capacity
        return clone

    # -- protocols ----------------------------------------------------------

    def __iter__(self):
        for i in range(self._size):
            yield self._storage[i]

    def __len__(self):
        return self._size

    def __eq__(self, other):
        if not isinstance(other, DynamicArray):
            return NotImplemented
        if self._size != other._size:
            return False
        return all(_elements_equal(a, b) for a, b in zip(self, other))

    __hash__ = None

    def write_to(self, stream):
        """Write each element followed by a single space."""
        for element in self:
            stream.write(f"{element} ")

    def __str__(self):
        return "".join(f"{element} " for element in self)

    def __repr__(self):
        return f"DynamicArray({list(self)!r})"

    # -- internals ----------------------------------------------------------

    def _default_element(self):
        if self._element_type is not None:
            return self._element_type()
        return self._allocator.default_value()

    def _grown_capacity(self):
        return 1 if self._capacity == 0 else self._capacity * 2

    def _grow_if_full(self):
        if self._size == self._capacity:
            self.reserve(self._grown_capacity())

    def _build_block(self, count, capacity, place, allocator=None):
        """Allocate capacity slots and run place(block, i) for i in [0, count).

        On failure the slots built so far are destroyed and the block is
        released before the exception is re-raised.
        """
        if allocator is None:
            allocator = self._allocator
        block = allocator.allocate(capacity)
        built = 0
        try:
            for i in range(count):
                place(block, i)
                built += 1
        except BaseException:
            self._release(block, built, capacity, allocator)
            raise
        return block

    def _copy_block(self, source, allocator):
        if source._storage is None:
            return None
        src = source._storage
        return self._build_block(
            source._size,
            source._capacity,
            lambda block, i: allocator.construct(block, i, src[i]),
            allocator,
        )

    def _reallocate(self, new_cap):
        logger.debug("DynamicArray: reallocating %d -> %d slots", self._capacity, new_cap)
        old, size = self._storage, self._size
        if new_cap == 0:
            block = None
        else:
            allocator = self._allocator
            block = self._build_block(
                size, new_cap, lambda b, i: allocator.move_construct(b, i, old[i])
            )
        self._release(old, size, self._capacity, self._allocator)
        self._storage = block
        self._capacity = new_cap

    @staticmethod
    def _release(block, size, capacity, allocator):
        if block is None:
            return
        for i in range(size):
            allocator.destroy(block, i)
        allocator.deallocate(block, capacity)

    def _swap_state(self, other):
        self._storage, other._storage = other._storage, self._storage
        self._size, other._size = other._size, self._size
        self._capacity, other._capacity = other._capacity, self._capacity
