# -*- coding: utf-8 -*-
"""
================================================================================
EMpost Payload Mapping
================================================================================
Purpose:
----------------
Translates our `Invoice` records into the JSON bodies EMpost expects for
`shipment/create` and `shipment/issueInvoice`.

Every function here is pure and total: missing or malformed invoice data never
raises, it is replaced by the defaults EMpost accepts. EMpost rejects zero or
negative weights and dimensions, so those are floored, and optional sections
(COD, customs, delivery date) are left out of the payload entirely instead of
being sent as null.

Key Functions:
- `parse_address(text)`: Free-text address -> line1..line3, city, country.
- `derive_dimension_cm(volume_cbm)`: Cube edge in cm for a declared volume.
- `derive_item_weight(weight_kg, item_count)`: Per-item share of the weight.
- `to_amount(value)`: Money as a 2-decimal JSON number.
- `map_delivery_status(status)`: Invoice status -> EMpost delivery status.
- `map_invoice_to_shipment(invoice)` / `map_invoice_to_empost_invoice(invoice)`.
----------------
"""
import math
from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# --- Defaults EMpost accepts for missing data ---
DEFAULT_COUNTRY_CODE = 'AE'
DEFAULT_CITY = 'Dubai'
DEFAULT_LINE = 'N/A'
DEFAULT_PHONE = '+971500000000'
DEFAULT_CURRENCY = 'AED'
DEFAULT_HS_CODE = '8504.40'
DEFAULT_DIMENSION_CM = 10
MIN_DIMENSION_CM = 1
MIN_WEIGHT_KG = 0.1
WEIGHT_UNIT = 'KG'
DIMENSION_UNIT = 'CM'

DELIVERY_STATUS_MAP = {
    'UNPAID': 'In Transit',
    'PAID': 'Delivered',
    'COLLECTED_BY_DRIVER': 'In Transit',
    'DELIVERED': 'Delivered',
    'OVERDUE': 'In Transit',
    'CANCELLED': 'Cancelled',
    'REMITTED': 'Delivered',
}
DEFAULT_DELIVERY_STATUS = 'In Transit'


# =====================================================================================
# --- Field Helpers ---
# =====================================================================================

def _to_float(value):
    """float(value) for numbers and numeric strings, None for anything else."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(str(value).strip()) if isinstance(value, str) else float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def to_amount(value):
    """Money normalised to 2 decimal places, as a JSON-serialisable number."""
    number = _to_float(value)
    if number is None:
        return 0.0
    try:
        return float(Decimal(str(number)).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return 0.0


def _money(amount):
    return {'currencyCode': DEFAULT_CURRENCY, 'amount': amount}


def _iso8601(value):
    """Dates as UTC `YYYY-MM-DDTHH:MM:SS.mmmZ`. Naive datetimes are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if not isinstance(value, date):
        return None
    if not isinstance(value, datetime):
        value = datetime(value.year, value.month, value.day)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"


def _now_iso8601():
    return _iso8601(datetime.now(timezone.utc))


def parse_address(address):
    """
    Splits a free-text address on commas.

    The first three segments become line1..line3 and the second-to-last segment
    is taken as the city, so "12 Main St, Suite 4, Dubai, UAE" gives city "Dubai".
    Empty or "N/A" input yields empty lines with the default city and country.
    """
    parsed = {
        'line1': '',
        'line2': '',
        'line3': '',
        'city': DEFAULT_CITY,
        'state': '',
        'postCode': '',
        'countryCode': DEFAULT_COUNTRY_CODE,
    }
    if not isinstance(address, str) or not address.strip() or address.strip() == 'N/A':
        return parsed

    parts = [part.strip() for part in address.split(',')]
    for index, key in enumerate(('line1', 'line2', 'line3')):
        if index < len(parts):
            parsed[key] = parts[index]
    if len(parts) >= 2 and parts[-2]:
        parsed['city'] = parts[-2]
    return parsed


def derive_dimension_cm(volume_cbm):
    """
    Edge length in cm of a cube with the declared volume (m^3).
    Falls back to 10cm when the volume is missing or the edge would be under 1cm.
    """
    volume = _to_float(volume_cbm)
    if volume is None or volume <= 0:
        return DEFAULT_DIMENSION_CM
    edge = (volume * 1000000) ** (1.0 / 3.0)
    if not math.isfinite(edge) or edge < MIN_DIMENSION_CM:
        return DEFAULT_DIMENSION_CM
    return round(edge, 2)


def derive_total_weight(weight_kg):
    weight = _to_float(weight_kg)
    if weight is None or weight <= 0:
        return MIN_WEIGHT_KG
    return max(weight, MIN_WEIGHT_KG)


def derive_item_weight(weight_kg, item_count):
    """Total weight split evenly across items, each share at least 0.1kg."""
    count = item_count if isinstance(item_count, int) and item_count > 0 else 1
    return max(round(derive_total_weight(weight_kg) / count, 3), MIN_WEIGHT_KG)


def map_delivery_status(status):
    return DELIVERY_STATUS_MAP.get(status, DEFAULT_DELIVERY_STATUS)


def _dimensions(edge_cm):
    edge = max(edge_cm, MIN_DIMENSION_CM)
    return {'length': edge, 'width': edge, 'height': edge, 'unit': DIMENSION_UNIT}


def _party(name, email, phone, raw_address):
    address = parse_address(raw_address)
    return {
        'name': name or DEFAULT_LINE,
        'email': email,
        'phone': phone or DEFAULT_PHONE,
        'secondPhone': '',
        'countryCode': address['countryCode'],
        'state': address['state'],
        'postCode': address['postCode'],
        'city': address['city'] or DEFAULT_CITY,
        'line1': address['line1'] or (raw_address if isinstance(raw_address, str) and raw_address else DEFAULT_LINE),
        'line2': address['line2'],
        'line3': address['line3'],
    }


# =====================================================================================
# --- Payload Builders ---
# =====================================================================================

def map_invoice_to_shipment(invoice):
    """
    Builds the body for `POST /api/v1/shipment/create`.

    EMpost upserts on `trackingNumber`, so sending this again for the same
    invoice updates the existing shipment rather than creating a second one.

    Args:
        invoice (Invoice): The invoice with its client and line items loaded.

    Returns:
        dict: The shipment payload.
    """
    client = getattr(invoice, 'client', None)
    line_items = list(getattr(invoice, 'line_items', None) or [])
    item_count = len(line_items) or 1

    dimension_cm = derive_dimension_cm(getattr(invoice, 'volume_cbm', None))
    total_weight = derive_total_weight(getattr(invoice, 'weight_kg', None))
    weight_per_item = derive_item_weight(getattr(invoice, 'weight_kg', None), item_count)

    # --> Sender (our client) and receiver
    sender = _party(
        getattr(client, 'contact_name', None) or getattr(client, 'company_name', None),
        getattr(client, 'email', None) or DEFAULT_LINE,
        getattr(client, 'phone', None),
        getattr(client, 'address', None),
    )
    receiver = _party(
        getattr(invoice, 'receiver_name', None),
        '',
        getattr(invoice, 'receiver_phone', None),
        getattr(invoice, 'receiver_address', None),
    )
    origin_country = sender['countryCode'] or DEFAULT_COUNTRY_CODE

    # --> Items: one per line item, or a single catch-all item
    items = []
    for index, item in enumerate(line_items):
        value = getattr(item, 'total', None)
        if _to_float(value) is None:
            value = getattr(item, 'unit_price', None)
        items.append({
            'description': getattr(item, 'description', None) or f"Item {index + 1}",
            'countryOfOrigin': origin_country,
            'quantity': getattr(item, 'quantity', None) or 1,
            'hsCode': DEFAULT_HS_CODE,
            'customsValue': _money(max(to_amount(value), 0)),
            'weight': {'unit': WEIGHT_UNIT, 'value': weight_per_item},
            'dimensions': _dimensions(dimension_cm),
        })
    if not items:
        items.append({
            'description': 'General Goods',
            'countryOfOrigin': origin_country,
            'quantity': 1,
            'hsCode': DEFAULT_HS_CODE,
            'customsValue': _money(max(to_amount(getattr(invoice, 'total_amount', None)), 0)),
            'weight': {'unit': WEIGHT_UNIT, 'value': total_weight},
            'dimensions': _dimensions(dimension_cm),
        })

    # --> Shipment details
    descriptions = [getattr(item, 'description', None) for item in line_items]
    details = {
        'weight': {'unit': WEIGHT_UNIT, 'value': total_weight},
        'declaredWeight': {'unit': WEIGHT_UNIT, 'value': total_weight},
        'deliveryCharges': _money(to_amount(getattr(invoice, 'amount', None))),
        'numberOfPieces': item_count,
        'pickupDate': _iso8601(getattr(invoice, 'issue_date', None)) or _now_iso8601(),
        'deliveryStatus': map_delivery_status(getattr(invoice, 'status', None)),
        'deliveryAttempts': 0,
        'shippingType': 'DOM',
        'productCategory': 'Electronics',
        'productType': 'Parcel',
        'descriptionOfGoods': ', '.join(d for d in descriptions if d) or 'General Goods',
        'dimensions': _dimensions(dimension_cm),
    }
    if getattr(invoice, 'delivery_type', None) == 'COD':
        cod_amount = to_amount(getattr(invoice, 'total_amount', None))
        if cod_amount > 0:
            details['cod'] = _money(cod_amount)
    delivery_date = _iso8601(getattr(invoice, 'due_date', None))
    if delivery_date:
        details['deliveryDate'] = delivery_date

    uhawb = getattr(invoice, 'empost_uhawb', None)
    tracking_number = getattr(invoice, 'awb_number', None) or getattr(invoice, 'invoice_id', None) or ''
    return {
        'trackingNumber': tracking_number,
        'uhawb': uhawb if uhawb and uhawb != 'N/A' else '',
        'sender': sender,
        'receiver': receiver,
        'details': details,
        'items': items,
    }


def map_invoice_to_empost_invoice(invoice):
    """Builds the body for `POST /api/v1/shipment/issueInvoice`."""
    client = getattr(invoice, 'client', None)
    company_name = getattr(client, 'company_name', None)
    tax_amount = to_amount(getattr(invoice, 'tax_amount', None))

    charges = [{'type': 'Base Rate', 'amount': _money(to_amount(getattr(invoice, 'amount', None)))}]
    if tax_amount > 0:
        charges.append({'type': 'Tax', 'amount': _money(tax_amount)})

    return {
        'trackingNumber': getattr(invoice, 'awb_number', None) or getattr(invoice, 'invoice_id', None) or '',
        'chargeableWeight': {'unit': WEIGHT_UNIT, 'value': derive_total_weight(getattr(invoice, 'weight_kg', None))},
        'charges': charges,
        'invoice': {
            'invoiceNumber': getattr(invoice, 'invoice_id', None) or DEFAULT_LINE,
            'invoiceDate': _iso8601(getattr(invoice, 'issue_date', None)) or _now_iso8601(),
            'billingAccountNumber': company_name or DEFAULT_LINE,
            'billingAccountName': getattr(client, 'contact_name', None) or company_name or DEFAULT_LINE,
            'totalDiscountAmount': 0,
            'taxAmount': tax_amount,
            'totalAmountIncludingTax': to_amount(getattr(invoice, 'total_amount', None)),
            'currencyCode': DEFAULT_CURRENCY,
        },
    }
