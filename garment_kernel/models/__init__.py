"""ORM models for the garment production kernel."""

from garment_kernel.models.batch import (
    BatchMaterialAllocation,
    BatchTimelineEntry,
    ProductionBatch,
    StageTask,
)
from garment_kernel.models.catalog import Product, ProductMaterial, StaffMember
from garment_kernel.models.finished_good import FinishedGood
from garment_kernel.models.material import Material, StockTransaction
from garment_kernel.models.notification import Notification
from garment_kernel.models.sequence import SequenceCounter

__all__ = [
    "BatchMaterialAllocation",
    "BatchTimelineEntry",
    "FinishedGood",
    "Material",
    "Notification",
    "Product",
    "ProductMaterial",
    "ProductionBatch",
    "SequenceCounter",
    "StaffMember",
    "StageTask",
    "StockTransaction",
]
