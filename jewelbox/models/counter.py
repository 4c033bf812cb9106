"""Yearly sequence counter used for bill numbers."""
from sqlalchemy import Column, String, Integer, UniqueConstraint
from jewelbox.database import Base, IdType


class Counter(Base):
    """Named per-year sequence (e.g. 'bill' 2026 -> 1, 2, 3...)."""

    __tablename__ = 'counter'
    __table_args__ = (
        UniqueConstraint('name', 'year', name='uq_counter_name_year'),
    )

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(50), nullable=False)
    prefix = Column(String(10), nullable=False)
    year = Column(Integer, nullable=False)
    seq = Column(Integer, nullable=False, default=0)

    def __repr__(self):
        return f"<Counter(name='{self.name}', year={self.year}, seq={self.seq})>"
