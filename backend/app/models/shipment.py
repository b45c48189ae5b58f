"""
Shipment and Invoice database models.

Only the fields the ledger needs are modelled here.
"""

from sqlalchemy import Column, Integer, String, Float, Numeric, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base


class Shipment(Base):
    """
    Shipment model.

    `shipment_date` is when the goods physically moved; vendor/customer
    invoice transactions are dated by it in the ledger.
    """
    __tablename__ = "shipments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    tracking_id = Column(String(100), unique=True, nullable=False, index=True)
    reference_number = Column(String(100), nullable=True)
    destination = Column(String(100), nullable=True)
    recipient_name = Column(String(200), nullable=True)
    weight = Column(Float, nullable=True)
    delivery_status = Column(String(50), nullable=True)

    shipment_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Shipment(id={self.id}, tracking_id='{self.tracking_id}')>"


class Invoice(Base):
    """Invoice model, optionally tied to the shipment it bills."""
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    invoice_number = Column(String(50), unique=True, nullable=False, index=True)
    shipment_id = Column(Integer, ForeignKey('shipments.id'), nullable=True, index=True)
    total_amount = Column(Numeric(14, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    shipment = relationship("Shipment", lazy="raise")

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}')>"
