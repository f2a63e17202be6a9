"""Holder for the most recently computed routing table."""

import threading

from spf.path_engine import RoutingTable


class RoutingTableCache:
    """Single-reference cache; readers never take the lock.

    A table is complete before it is handed to set(), and rebinding one
    attribute is atomic, so get() returns either the old or the new table.
    """

    def __init__(self):
        self._table = RoutingTable.empty()
        self._generation = 0
        self._lock = threading.Lock()

    def get(self):
        return self._table

    def set(self, table):
        if not isinstance(table, RoutingTable):
            raise TypeError("expected a RoutingTable, got %s" % type(table).__name__)
        with self._lock:
            self._table = table
            self._generation += 1
            return self._generation

    @property
    def generation(self):
        return self._generation
