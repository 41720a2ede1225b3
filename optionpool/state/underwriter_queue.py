"""
Ordered queue of underwriters eligible for new short exposure.

A doubly linked list with a dict index from address to node: O(1) append at
the tail, O(1) removal, and a persistent cursor that allocation walks resume
from. Order is enqueue order (oldest first).
"""

from __future__ import annotations

from typing import Dict, Iterator, List, Optional

from .positions import Address


class _Node:
    __slots__ = ("address", "prev", "next")

    def __init__(self, address: Address) -> None:
        self.address = address
        self.prev: Optional[_Node] = None
        self.next: Optional[_Node] = None


class UnderwriterQueue:
    def __init__(self) -> None:
        self._index: Dict[Address, _Node] = {}
        self._head: Optional[_Node] = None
        self._tail: Optional[_Node] = None
        self._cursor: Optional[_Node] = None

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, address: object) -> bool:
        return address in self._index

    def __iter__(self) -> Iterator[Address]:
        node = self._head
        while node is not None:
            yield node.address
            node = node.next

    def append(self, address: Address) -> None:
        """Enqueue at the tail. No-op if already queued."""
        if address in self._index:
            return
        node = _Node(address)
        node.prev = self._tail
        if self._tail is None:
            self._head = node
        else:
            self._tail.next = node
        self._tail = node
        self._index[address] = node

    def remove(self, address: Address) -> None:
        """Dequeue; the cursor moves to the removed node's successor."""
        node = self._index.pop(address, None)
        if node is None:
            return
        if node.prev is None:
            self._head = node.next
        else:
            node.prev.next = node.next
        if node.next is None:
            self._tail = node.prev
        else:
            node.next.prev = node.prev
        if self._cursor is node:
            self._cursor = node.next
        node.prev = node.next = None

    def next_of(self, address: Address) -> Optional[Address]:
        node = self._index[address].next
        return None if node is None else node.address

    @property
    def cursor(self) -> Optional[Address]:
        """Where the next allocation walk starts (the head when unset)."""
        node = self._cursor if self._cursor is not None else self._head
        return None if node is None else node.address

    def set_cursor(self, address: Optional[Address]) -> None:
        self._cursor = None if address is None else self._index[address]

    def walk(self) -> List[Address]:
        """One full pass starting at the cursor and wrapping around."""
        start = self.cursor
        if start is None:
            return []
        ordered = list(self)
        i = ordered.index(start)
        return ordered[i:] + ordered[:i]

    def copy(self) -> "UnderwriterQueue":
        copied = UnderwriterQueue()
        for address in self:
            copied.append(address)
        if self._cursor is not None:
            copied.set_cursor(self._cursor.address)
        return copied

    def __repr__(self) -> str:
        return f"UnderwriterQueue({len(self._index)} underwriters)"
