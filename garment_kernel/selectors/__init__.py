"""Read side: batch snapshots, timelines, labels and stock queries."""

from garment_kernel.selectors.base import BaseSelector
from garment_kernel.selectors.batch_selector import BatchSelector
from garment_kernel.selectors.stock_selector import StockSelector

__all__ = [
    "BaseSelector",
    "BatchSelector",
    "StockSelector",
]
