from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import Column, DateTime, func


class Base(DeclarativeBase):
     """
     Declarative base for the billing models. Each model names its table
     explicitly so the Alembic revisions and the ORM agree on every name.
     """


class TimestampMixin:
     """created_at / updated_at columns maintained by the database."""

     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=True)
