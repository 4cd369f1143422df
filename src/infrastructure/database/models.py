"""SQLAlchemy Models for PostgreSQL.

Defines ORM models for the resource store:
- Resources (items, item sets, media, value annotations) & item set membership
- Values
- Custom vocabularies
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ============================================
# Resources
# ============================================

class ResourceRecord(Base):
    """Any resource: item, item set, media or value annotation."""

    __tablename__ = "resources"

    id = Column(Integer, primary_key=True, autoincrement=True)
    resource_type = Column(String(50), nullable=False, index=True)
    title = Column(Text)
    is_public = Column(Boolean, nullable=False, default=True)
    resource_template_id = Column(Integer, index=True)
    resource_class_id = Column(Integer, index=True)
    # Owning item of a media
    parent_id = Column(Integer, ForeignKey("resources.id", ondelete="CASCADE"), index=True)
    position = Column(Integer, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    modified_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    values = relationship(
        "ValueRecord",
        back_populates="resource",
        foreign_keys="ValueRecord.resource_id",
        cascade="all, delete-orphan",
        order_by="ValueRecord.position",
    )


class ItemSetMembership(Base):
    """Membership of an item in an item set."""

    __tablename__ = "item_item_set"

    item_id = Column(Integer, ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True)
    item_set_id = Column(Integer, ForeignKey("resources.id", ondelete="CASCADE"), primary_key=True)
    position = Column(Integer, default=0)


# ============================================
# Values
# ============================================

class ValueRecord(Base):
    """One value of a resource, with exactly one payload column set."""

    __tablename__ = "resource_values"

    id = Column(Integer, primary_key=True, autoincrement=True)
    resource_id = Column(Integer, ForeignKey("resources.id", ondelete="CASCADE"), nullable=False)
    property_term = Column(String(190), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    type = Column(String(190), nullable=False, default="literal")
    lang = Column(String(190))
    value = Column(Text)
    uri = Column(Text)
    value_resource_id = Column(Integer, ForeignKey("resources.id", ondelete="CASCADE"))
    value_annotation_id = Column(Integer, ForeignKey("resources.id", ondelete="SET NULL"))
    is_public = Column(Boolean, nullable=False, default=True)

    resource = relationship("ResourceRecord", back_populates="values", foreign_keys=[resource_id])

    __table_args__ = (
        Index("idx_values_property_term", "property_term"),
        Index("idx_values_resource_property", "resource_id", "property_term"),
    )


# ============================================
# Custom vocabularies
# ============================================

class CustomVocabRecord(Base):
    """Closed term list, optionally opened to growth by templates."""

    __tablename__ = "custom_vocabs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    label = Column(String(190), nullable=False, unique=True)
    value_type = Column(String(50), nullable=False, default="literal")
    terms = Column(JSONB, default=list)
