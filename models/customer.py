# models/customer.py
from sqlalchemy import Column, Integer, String, Numeric, DateTime
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin


class Customer(Base, TimestampMixin):
     """
     Customer model - a shop supplied with gas cylinders.

     ``balance`` is the arrears running total: positive means the customer
     owes money, negative means they hold credit. It is written only by
     services.ledger_service.adjust_balance, never assigned directly.
     Customers are never deleted; ``deleted_at`` soft-retires them.
     """
     __tablename__ = "customers"

     id = Column(Integer, primary_key=True, autoincrement=True)
     user_id = Column(String(64), nullable=True, unique=True, index=True)  # auth principal for self-service

     shop_name = Column(String(200), nullable=False)
     in_charge_name = Column(String(200), nullable=False)
     phone = Column(String(50), nullable=False)
     email = Column(String(255), nullable=True)
     address = Column(String(500), nullable=True)

     # Pricing and arrears
     price_per_kg = Column(Numeric(12, 2), nullable=False)
     balance = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")

     deleted_at = Column(DateTime, nullable=True)

     # Relationships
     deliveries = relationship("Delivery", back_populates="customer")
     payments = relationship("Payment", back_populates="customer")

     def __repr__(self):
          return f"<Customer(id={self.id}, shop='{self.shop_name}', balance={self.balance})>"

     @property
     def is_retired(self) -> bool:
          return self.deleted_at is not None
