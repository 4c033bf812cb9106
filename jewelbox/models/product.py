"""Product model and its material composition rows."""
from sqlalchemy import Column, String, Text, Boolean, Integer, Numeric, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from jewelbox.database import Base, IdType


GENDERS = ('men', 'women', 'unisex', 'kids')


class Product(Base):
    """
    Product priced from its composition.

    The pricing snapshot columns (metal_total ... total_price) are written only
    by the pricing engine; clients never supply them.
    """

    __tablename__ = 'product'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    product_code = Column(String(50), nullable=False, unique=True)
    slug = Column(String(220), nullable=False, unique=True)
    description = Column(Text, nullable=False, default='')
    gender = Column(String(10), nullable=False, default='unisex')
    is_active = Column(Boolean, nullable=False, default=True)

    # Charges configuration
    making_charge_type = Column(String(12), nullable=False, default='fixed')
    making_charge_value = Column(Numeric(14, 4), nullable=False, default=0)
    product_wastage_type = Column(String(12), nullable=False, default='fixed')
    product_wastage_value = Column(Numeric(14, 4), nullable=False, default=0)
    gst_percentage = Column(Numeric(7, 4), nullable=False, default=3)
    other_charges = Column(JSON, nullable=False, default=list)  # [{"name": str, "amount": "500.00"}]

    # Pricing snapshot
    metal_total = Column(Numeric(16, 4), nullable=False, default=0)
    gemstone_total = Column(Numeric(16, 4), nullable=False, default=0)
    making_charge_amount = Column(Numeric(16, 4), nullable=False, default=0)
    wastage_charge_amount = Column(Numeric(16, 4), nullable=False, default=0)
    other_charges_total = Column(Numeric(16, 4), nullable=False, default=0)
    subtotal = Column(Numeric(16, 4), nullable=False, default=0)
    gst_amount = Column(Numeric(16, 4), nullable=False, default=0)
    total_price = Column(Numeric(16, 4), nullable=False, default=0)
    last_price_sync = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    metal_components = relationship(
        'ProductMetalComponent',
        back_populates='product',
        cascade='all, delete-orphan',
        order_by='ProductMetalComponent.position'
    )
    gemstone_components = relationship(
        'ProductGemstoneComponent',
        back_populates='product',
        cascade='all, delete-orphan',
        order_by='ProductGemstoneComponent.position'
    )

    def __repr__(self):
        return f"<Product(id={self.id}, code='{self.product_code}', total_price={self.total_price})>"

    def to_dict(self):
        """Convert to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'name': self.name,
            'product_code': self.product_code,
            'slug': self.slug,
            'description': self.description,
            'gender': self.gender,
            'is_active': self.is_active,
            'metal_composition': [c.to_dict() for c in self.metal_components],
            'gemstone_composition': [c.to_dict() for c in self.gemstone_components],
            'making_charges': {'type': self.making_charge_type, 'value': float(self.making_charge_value or 0)},
            'product_wastage': {'type': self.product_wastage_type, 'value': float(self.product_wastage_value or 0)},
            'gst_percentage': float(self.gst_percentage or 0),
            'other_charges': [
                {'name': c['name'], 'amount': float(c['amount'])} for c in (self.other_charges or [])
            ],
            'metal_total': float(self.metal_total or 0),
            'gemstone_total': float(self.gemstone_total or 0),
            'making_charge_amount': float(self.making_charge_amount or 0),
            'wastage_charge_amount': float(self.wastage_charge_amount or 0),
            'other_charges_total': float(self.other_charges_total or 0),
            'subtotal': float(self.subtotal or 0),
            'gst_amount': float(self.gst_amount or 0),
            'total_price': float(self.total_price or 0),
            'last_price_sync': self.last_price_sync.isoformat() if self.last_price_sync else None,
        }


class ProductMetalComponent(Base):
    """One metal variant used in a product."""

    __tablename__ = 'product_metal_component'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    metal_id = Column(IdType, ForeignKey('metal.id'), nullable=False)
    variant_id = Column(IdType, ForeignKey('metal_variant.id'), nullable=False)
    variant_name = Column(String(150), nullable=False)
    weight_in_grams = Column(Numeric(12, 4), nullable=False)
    price_per_gram = Column(Numeric(14, 4), nullable=False, default=0)
    subtotal = Column(Numeric(16, 4), nullable=False, default=0)
    component_wastage_type = Column(String(12), nullable=False, default='percentage')
    component_wastage_value = Column(Numeric(14, 4), nullable=False, default=0)

    product = relationship('Product', back_populates='metal_components')
    metal = relationship('Metal')

    def __repr__(self):
        return f"<ProductMetalComponent(product_id={self.product_id}, variant_id={self.variant_id}, weight={self.weight_in_grams})>"

    def to_dict(self):
        return {
            'metal_id': self.metal_id,
            'variant_id': self.variant_id,
            'variant_name': self.variant_name,
            'weight_in_grams': float(self.weight_in_grams),
            'price_per_gram': float(self.price_per_gram),
            'subtotal': float(self.subtotal),
            'component_wastage': {
                'type': self.component_wastage_type,
                'value': float(self.component_wastage_value or 0),
            },
        }


class ProductGemstoneComponent(Base):
    """One gemstone variant used in a product."""

    __tablename__ = 'product_gemstone_component'

    id = Column(IdType, primary_key=True, autoincrement=True)
    product_id = Column(IdType, ForeignKey('product.id', ondelete='CASCADE'), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    gemstone_id = Column(IdType, ForeignKey('gemstone.id'), nullable=False)
    variant_id = Column(IdType, ForeignKey('gemstone_variant.id'), nullable=False)
    variant_name = Column(String(150), nullable=False)
    weight_in_carats = Column(Numeric(12, 4), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price_per_carat = Column(Numeric(14, 4), nullable=False, default=0)
    subtotal = Column(Numeric(16, 4), nullable=False, default=0)
    component_wastage_type = Column(String(12), nullable=False, default='percentage')
    component_wastage_value = Column(Numeric(14, 4), nullable=False, default=0)

    product = relationship('Product', back_populates='gemstone_components')
    gemstone = relationship('Gemstone')

    def __repr__(self):
        return f"<ProductGemstoneComponent(product_id={self.product_id}, variant_id={self.variant_id}, qty={self.quantity})>"

    def to_dict(self):
        return {
            'gemstone_id': self.gemstone_id,
            'variant_id': self.variant_id,
            'variant_name': self.variant_name,
            'weight_in_carats': float(self.weight_in_carats),
            'quantity': self.quantity,
            'price_per_carat': float(self.price_per_carat),
            'subtotal': float(self.subtotal),
            'component_wastage': {
                'type': self.component_wastage_type,
                'value': float(self.component_wastage_value or 0),
            },
        }
