"""
Typed records passed between the invoice store, the payload mapper and the
EMpost client. Rows come out of psycopg2 as dicts; `from_row` keeps the
column-to-field mapping in one place.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional


@dataclass
class Client:
    id: int
    company_name: str
    contact_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            company_name=row['company_name'],
            contact_name=row.get('contact_name'),
            email=row.get('email'),
            phone=row.get('phone'),
            address=row.get('address'),
            city=row.get('city'),
            country=row.get('country'),
        )


@dataclass
class ShipmentRequest:
    id: int
    request_id: Optional[str] = None
    awb_number: Optional[str] = None
    status: Optional[str] = None
    delivery_status: Optional[str] = None
    number_of_boxes: Optional[int] = None
    origin_place: Optional[str] = None
    destination_place: Optional[str] = None
    receiver_name: Optional[str] = None
    receiver_address: Optional[str] = None
    receiver_phone: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row['id'],
            request_id=row.get('request_id'),
            awb_number=row.get('awb_number'),
            status=row.get('status'),
            delivery_status=row.get('delivery_status'),
            number_of_boxes=row.get('number_of_boxes'),
            origin_place=row.get('origin_place'),
            destination_place=row.get('destination_place'),
            receiver_name=row.get('receiver_name'),
            receiver_address=row.get('receiver_address'),
            receiver_phone=row.get('receiver_phone'),
        )


@dataclass
class LineItem:
    description: Optional[str] = None
    quantity: int = 1
    unit_price: Optional[Decimal] = None
    total: Optional[Decimal] = None

    @classmethod
    def from_row(cls, row):
        return cls(
            description=row.get('description'),
            quantity=row.get('quantity') or 1,
            unit_price=row.get('unit_price'),
            total=row.get('total'),
        )


@dataclass
class Invoice:
    """An invoice with its client (required) and request (optional) context loaded."""

    id: int
    client: Client
    invoice_id: Optional[str] = None
    awb_number: Optional[str] = None
    empost_uhawb: Optional[str] = None
    status: str = 'UNPAID'
    amount: Decimal = Decimal('0')
    tax_amount: Decimal = Decimal('0')
    total_amount: Decimal = Decimal('0')
    delivery_type: Optional[str] = None
    weight_kg: Optional[Decimal] = None
    volume_cbm: Optional[Decimal] = None
    receiver_name: Optional[str] = None
    receiver_address: Optional[str] = None
    receiver_phone: Optional[str] = None
    issue_date: Optional[datetime] = None
    due_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
    request: Optional[ShipmentRequest] = None
    line_items: List[LineItem] = field(default_factory=list)

    @property
    def tracking_number(self):
        return self.awb_number or self.invoice_id

    @classmethod
    def from_row(cls, row, client, request=None, line_items=None):
        return cls(
            id=row['id'],
            client=client,
            invoice_id=row.get('invoice_id') or row.get('invoice_number'),
            awb_number=row.get('awb_number') or row.get('tracking_code'),
            empost_uhawb=row.get('empost_uhawb'),
            status=row.get('status') or 'UNPAID',
            amount=row.get('amount') or Decimal('0'),
            tax_amount=row.get('tax_amount') or Decimal('0'),
            total_amount=row.get('total_amount') or Decimal('0'),
            delivery_type=row.get('delivery_type'),
            weight_kg=row.get('weight_kg'),
            volume_cbm=row.get('volume_cbm'),
            receiver_name=row.get('receiver_name'),
            receiver_address=row.get('receiver_address'),
            receiver_phone=row.get('receiver_phone'),
            issue_date=row.get('issue_date'),
            due_date=row.get('due_date'),
            created_at=row.get('created_at'),
            request=request,
            line_items=list(line_items or []),
        )
