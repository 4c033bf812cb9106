"""Named per-year sequences for bill numbers and product codes."""
from sqlalchemy.exc import IntegrityError
from jewelbox.models import Counter


def next_sequence(session, name: str, prefix: str, year: int) -> int:
    """
    Increment and return the sequence for (name, year).

    The counter row is created on first use. Runs inside the caller's
    transaction; the row lock serializes concurrent bill creation.
    """
    counter = session.query(Counter).filter(
        Counter.name == name,
        Counter.year == year
    ).with_for_update().first()

    if counter is None:
        try:
            with session.begin_nested():
                counter = Counter(name=name, prefix=prefix, year=year, seq=0)
                session.add(counter)
        except IntegrityError:
            # Another transaction created it first
            counter = session.query(Counter).filter(
                Counter.name == name,
                Counter.year == year
            ).with_for_update().one()

    counter.seq += 1
    session.flush()
    return counter.seq


def format_bill_number(prefix: str, year: int, seq: int) -> str:
    """AJ-2026-0001"""
    return f"{prefix}-{year}-{seq:04d}"


def format_product_code(prefix: str, name: str, seq: int) -> str:
    """AJ-R-001 for 'Rose Gold Ring'."""
    initial = next((ch for ch in name.upper() if ch.isalnum()), 'X')
    return f"{prefix}-{initial}-{seq:03d}"
