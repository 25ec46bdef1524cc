"""
Module: garment_kernel.models.catalog
Responsibility: The reference records the batch engine reads but does not
    manage: products, their bill of materials, and staff members.
Architecture position: Kernel > Models.  Catalog and staff management live
    outside the kernel; these tables exist so the engine can check product
    existence, material references and an assignee's role.

Invariants enforced:
    - (product_id, material_id) is unique within a bill of materials.
    - Staff role is one of the Role enum values (String(50) storage).
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from garment_kernel.db.base import Base


class Product(Base):
    """A finished-goods product that batches produce."""

    __tablename__ = "products"

    __table_args__ = (UniqueConstraint("sku", name="uq_product_sku"),)

    sku: Mapped[str] = mapped_column(String(50))
    name: Mapped[str] = mapped_column(String(200))
    is_active: Mapped[bool] = mapped_column(default=True)

    materials: Mapped[list["ProductMaterial"]] = relationship(
        back_populates="product",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class ProductMaterial(Base):
    """One bill-of-materials line: quantity of a material per product unit."""

    __tablename__ = "product_materials"

    __table_args__ = (
        UniqueConstraint("product_id", "material_id", name="uq_product_material"),
        Index("idx_product_material_material", "material_id"),
    )

    product_id: Mapped[UUID] = mapped_column(ForeignKey("products.id"))
    material_id: Mapped[UUID] = mapped_column(ForeignKey("materials.id"))
    quantity_per_unit: Mapped[Decimal] = mapped_column()
    unit: Mapped[str] = mapped_column(String(50))

    product: Mapped[Product] = relationship(back_populates="materials")


class StaffMember(Base):
    """A person who can be assigned stage work or act on batches."""

    __tablename__ = "staff_members"

    __table_args__ = (Index("idx_staff_role", "role"),)

    name: Mapped[str] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(String(50))
    is_active: Mapped[bool] = mapped_column(default=True)

    def __repr__(self) -> str:
        return f"<StaffMember {self.name} {self.role}>"
