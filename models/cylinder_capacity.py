# models/cylinder_capacity.py
from sqlalchemy import Column, Integer, Numeric
from .base import Base


class CylinderCapacity(Base):
     """
     Cylinder size catalog (6kg, 13kg, 50kg, ...).
     Maintained by the catalog screens; the billing core only reads it.
     """
     __tablename__ = "cylinder_capacities"

     id = Column(Integer, primary_key=True, autoincrement=True)
     capacity_kg = Column(Numeric(8, 2), nullable=False)

     def __repr__(self):
          return f"<CylinderCapacity(id={self.id}, capacity_kg={self.capacity_kg})>"
