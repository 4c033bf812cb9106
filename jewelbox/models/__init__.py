"""Models package - exports all SQLAlchemy models."""
from jewelbox.models.admin import Admin

# Catalog
from jewelbox.models.metal import Metal, MetalVariant, METAL_UNITS
from jewelbox.models.gemstone import Gemstone, GemstoneVariant, GEMSTONE_UNITS
from jewelbox.models.product import Product, ProductMetalComponent, ProductGemstoneComponent, GENDERS
from jewelbox.models.price_history import PriceHistory

# Billing and ledger
from jewelbox.models.counter import Counter
from jewelbox.models.customer import Customer, PaymentHistory
from jewelbox.models.bill import Bill, BillItem, PaymentMode

__all__ = [
    'Admin',
    'Metal', 'MetalVariant', 'METAL_UNITS',
    'Gemstone', 'GemstoneVariant', 'GEMSTONE_UNITS',
    'Product', 'ProductMetalComponent', 'ProductGemstoneComponent', 'GENDERS',
    'PriceHistory',
    'Counter', 'Customer', 'PaymentHistory',
    'Bill', 'BillItem', 'PaymentMode',
]
