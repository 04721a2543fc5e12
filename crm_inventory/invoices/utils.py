# crm_inventory/invoices/utils.py

import re
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.orm import Session

from crm_inventory.models.invoices import DiscountType, Invoice


TWO_PLACES = Decimal("0.01")
INVOICE_NUMBER_PATTERN = re.compile(r"^INV-(\d+)$")


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass
class InvoiceTotals:
    subtotal: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    amount_due: Decimal


def generate_invoice_number(db: Session, org_id: int) -> str:
    """Next invoice number for the tenant, e.g. INV-0001, INV-0002."""
    numbers = (
        db.query(Invoice.invoice_number)
        .filter(Invoice.org_id == org_id)
        .all()
    )

    highest = 0
    for (invoice_number,) in numbers:
        match = INVOICE_NUMBER_PATTERN.match(invoice_number)
        if match:
            highest = max(highest, int(match.group(1)))

    return f"INV-{highest + 1:04d}"


def calculate_item_amount(quantity, unit_price) -> Decimal:
    return to_money(Decimal(str(quantity)) * Decimal(str(unit_price)))


def calculate_invoice_totals(
    items,
    tax_rate=None,
    discount_type=None,
    discount_value=None,
    amount_paid=0,
) -> InvoiceTotals:
    """Totals for lines exposing ``quantity`` and ``unit_price``.

    The discount applies to the subtotal and tax to the discounted subtotal.
    A fixed discount never exceeds the subtotal. Rounding to cents happens
    once, on the final figures.
    """
    subtotal = sum(
        (Decimal(str(item.quantity)) * Decimal(str(item.unit_price)) for item in items),
        Decimal("0"),
    )

    discount_amount = Decimal("0")
    if discount_value and discount_type:
        value = Decimal(str(discount_value))
        if DiscountType(discount_type) == DiscountType.PERCENTAGE:
            discount_amount = subtotal * value / 100
        else:
            discount_amount = min(value, subtotal)

    discounted = subtotal - discount_amount

    tax_amount = Decimal("0")
    if tax_rate:
        tax_amount = discounted * Decimal(str(tax_rate)) / 100

    total = discounted + tax_amount
    amount_due = max(Decimal("0"), total - Decimal(str(amount_paid)))

    return InvoiceTotals(
        subtotal=to_money(subtotal),
        tax_amount=to_money(tax_amount),
        discount_amount=to_money(discount_amount),
        total=to_money(total),
        amount_due=to_money(amount_due),
    )
