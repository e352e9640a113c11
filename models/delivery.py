# models/delivery.py
import enum
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Text, ForeignKey, Enum, func
from sqlalchemy.orm import relationship
from .base import Base, TimestampMixin


class DeliveryStatus(str, enum.Enum):
     """Forward-only delivery lifecycle."""
     PENDING = "pending"
     EN_ROUTE = "en_route"
     DELIVERED = "delivered"


# Allowed forward moves; staying in the same state is always a no-op
ALLOWED_TRANSITIONS = {
     DeliveryStatus.PENDING: {DeliveryStatus.EN_ROUTE},
     DeliveryStatus.EN_ROUTE: {DeliveryStatus.DELIVERED},
     DeliveryStatus.DELIVERED: set(),
}


class Delivery(Base, TimestampMixin):
     """
     Delivery model - one drop of cylinders at a customer's shop.

     ``total_charge`` is always total_kg * price_per_kg_at_time. The price
     snapshot only changes through the price revision service. ``version``
     is an optimistic lock: concurrent writers of the same row raise
     StaleDataError instead of silently overwriting each other.
     """
     __tablename__ = "deliveries"

     id = Column(Integer, primary_key=True, autoincrement=True)
     customer_id = Column(
          Integer,
          ForeignKey("customers.id", ondelete="RESTRICT"),
          nullable=False,
          index=True
     )
     logged_by_user_id = Column(String(64), nullable=True)

     # Charge
     total_kg = Column(Numeric(12, 2), nullable=False)
     price_per_kg_at_time = Column(Numeric(12, 2), nullable=False)
     total_charge = Column(Numeric(12, 2), nullable=False)
     manual_adjustment = Column(Numeric(12, 2), nullable=False, default=0, server_default="0")

     status = Column(
          Enum(
               DeliveryStatus,
               name="delivery_status",
               create_constraint=True,
               values_callable=lambda e: [m.value for m in e],
          ),
          default=DeliveryStatus.PENDING,
          nullable=False,
          index=True
     )
     notes = Column(Text, nullable=True)
     delivery_date = Column(DateTime, server_default=func.now(), nullable=False)
     version = Column(Integer, nullable=False, default=1)

     # Relationships
     customer = relationship("Customer", back_populates="deliveries")
     items = relationship(
          "DeliveryItem",
          back_populates="delivery",
          cascade="all, delete-orphan",
          passive_deletes=True,
     )
     payments = relationship("Payment", back_populates="delivery")

     __mapper_args__ = {"version_id_col": version}

     def __repr__(self):
          return f"<Delivery(id={self.id}, total_charge={self.total_charge}, status='{self.status.value}')>"

     @property
     def billed_amount(self):
          """What this delivery contributed to the customer's balance."""
          return self.total_charge + (self.manual_adjustment or 0)

     def can_transition_to(self, new_status: DeliveryStatus) -> bool:
          return new_status == self.status or new_status in ALLOWED_TRANSITIONS[self.status]


class DeliveryItem(Base):
     """One line of a delivery: ``quantity`` cylinders of one capacity."""
     __tablename__ = "delivery_items"

     id = Column(Integer, primary_key=True, autoincrement=True)
     delivery_id = Column(
          Integer,
          ForeignKey("deliveries.id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )
     cylinder_capacity_id = Column(
          Integer,
          ForeignKey("cylinder_capacities.id"),
          nullable=False
     )
     quantity = Column(Integer, nullable=False)
     kg_contribution = Column(Numeric(12, 2), nullable=False)

     delivery = relationship("Delivery", back_populates="items")
     cylinder_capacity = relationship("CylinderCapacity")

     def __repr__(self):
          return f"<DeliveryItem(delivery_id={self.delivery_id}, qty={self.quantity}, kg={self.kg_contribution})>"
