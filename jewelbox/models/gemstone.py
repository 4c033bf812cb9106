"""Gemstone and gemstone variant models."""
from sqlalchemy import Column, String, Boolean, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelbox.database import Base, IdType


GEMSTONE_UNITS = ('carat', 'ratti', 'cent')


class Gemstone(Base):
    """Gemstone (diamond, ruby, emerald...)."""

    __tablename__ = 'gemstone'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False, unique=True)
    slug = Column(String(60), nullable=False, unique=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    variants = relationship(
        'GemstoneVariant',
        back_populates='gemstone',
        cascade='all, delete-orphan',
        order_by='GemstoneVariant.id'
    )

    def __repr__(self):
        return f"<Gemstone(id={self.id}, name='{self.name}')>"

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'name': self.name,
            'slug': self.slug,
            'is_active': self.is_active,
            'variants': [v.to_dict() for v in self.variants],
        }


class GemstoneVariant(Base):
    """Grade of a gemstone (cut/clarity/color) with its current rate per carat."""

    __tablename__ = 'gemstone_variant'

    id = Column(IdType, primary_key=True, autoincrement=True)
    gemstone_id = Column(IdType, ForeignKey('gemstone.id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    cut = Column(String(50), nullable=False, default='')
    clarity = Column(String(50), nullable=False, default='')
    color = Column(String(50), nullable=False, default='')
    price_per_carat = Column(Numeric(14, 4), nullable=False, default=0)
    unit = Column(String(10), nullable=False, default='carat')
    last_updated = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    gemstone = relationship('Gemstone', back_populates='variants')

    @property
    def rate(self):
        return self.price_per_carat

    def __repr__(self):
        return f"<GemstoneVariant(id={self.id}, name='{self.name}', price_per_carat={self.price_per_carat})>"

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'cut': self.cut,
            'clarity': self.clarity,
            'color': self.color,
            'price_per_carat': float(self.price_per_carat or 0),
            'unit': self.unit,
            'last_updated': self.last_updated.isoformat() if self.last_updated else None,
        }
