"""Metal and metal variant models."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelbox.database import Base, IdType


METAL_UNITS = ('gram', 'tola', 'ounce')


class Metal(Base):
    """Metal (gold, silver, platinum...)."""

    __tablename__ = 'metal'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    slug = Column(String(60), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    variants = relationship(
        'MetalVariant',
        back_populates='metal',
        cascade='all, delete-orphan',
        order_by='MetalVariant.id'
    )

    def __repr__(self):
        return f"<Metal(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'is_active': self.is_active,
            'variants': [v.to_dict() for v in self.variants],
        }


class MetalVariant(Base):
    """Purity grade of a metal with its current market rate (e.g. Gold 22K)."""

    __tablename__ = 'metal_variant'

    id = Column(IdType, primary_key=True, autoincrement=True)
    metal_id = Column(IdType, ForeignKey('metal.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    purity = Column(Numeric(7, 4), nullable=False, default=0)
    price_per_gram = Column(Numeric(14, 4), nullable=False, default=0)
    unit = Column(String(10), nullable=False, default='gram')
    last_updated = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    metal = relationship('Metal', back_populates='variants')

    @property
    def rate(self):
        return self.price_per_gram

    def __repr__(self):
        return f"<MetalVariant(id={self.id}, name='{self.name}', price_per_gram={self.price_per_gram})>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'purity': float(self.purity or 0),
            'price_per_gram': float(self.price_per_gram or 0),
            'unit': self.unit,
            'last_updated': self.last_updated.isoformat() if self.last_updated else None,
        }
