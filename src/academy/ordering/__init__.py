"""Dense 1..N ordering of sibling items under insert, move, delete and restore."""

from academy.ordering.base import OrderedItem, OrderedStore, OrderedTransaction, Reorder
from academy.ordering.sequencer import Sequencer

__all__ = [
    "OrderedItem",
    "OrderedStore",
    "OrderedTransaction",
    "Reorder",
    "Sequencer",
]
