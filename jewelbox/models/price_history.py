"""Price history model - audit trail of committed rate changes."""
from sqlalchemy import Column, String, Integer, Numeric, DateTime, ForeignKey, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelbox.database import Base, IdType


class PriceHistory(Base):
    """One committed metal/gemstone variant rate change."""

    __tablename__ = 'price_history'
    __table_args__ = (
        Index('ix_price_history_entity', 'entity_type', 'entity_id', 'created_at'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    entity_type = Column(String(10), nullable=False)  # metal, gemstone
    entity_id = Column(IdType, nullable=False)
    variant_id = Column(IdType, nullable=False)
    entity_name = Column(String(50), nullable=False)
    variant_name = Column(String(160), nullable=False)
    old_price = Column(Numeric(14, 4), nullable=False)
    new_price = Column(Numeric(14, 4), nullable=False)
    unit = Column(String(10), nullable=False, default='')
    affected_products = Column(Integer, nullable=False, default=0)
    changed_by = Column(IdType, ForeignKey('admin.id'), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), index=True)

    admin = relationship('Admin')

    def __repr__(self):
        return f"<PriceHistory(id={self.id}, {self.entity_type} {self.variant_name}: {self.old_price} -> {self.new_price})>"

    def to_dict(self):
        return {
            'id': self.id,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'variant_id': self.variant_id,
            'entity_name': self.entity_name,
            'variant_name': self.variant_name,
            'old_price': self.old_price,
            'new_price': self.new_price,
            'unit': self.unit,
            'affected_products': self.affected_products,
            'changed_by': self.changed_by,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
