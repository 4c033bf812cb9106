"""Admin model - back-office staff allowed to mutate catalog, bills and ledgers."""
from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from werkzeug.security import generate_password_hash, check_password_hash
from jewelbox.database import Base, IdType


class Admin(Base):
    """Back-office administrator."""

    __tablename__ = 'admin'

    id = Column(IdType, primary_key=True, autoincrement=True)
    name = Column(String(120), nullable=False, default='Admin')
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    last_login = Column(DateTime(timezone=True), nullable=True)

    def set_password(self, password):
        """Set password hash."""
        self.password_hash = generate_password_hash(password, method='scrypt')

    def check_password(self, password):
        """Check password against hash."""
        if not self.password_hash:
            return False
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f"<Admin(id={self.id}, email='{self.email}')>"
