"""
Prefilled messaging hand-off for destinations outside the domestic zone.

Pure functions only: the caller opens the link. Nothing confirms that the
message was actually sent.
"""
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional
from urllib.parse import quote

WA_BASE = "https://wa.me"


@dataclass(frozen=True)
class HandoffCustomer:
    id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class HandoffAddress:
    name: str
    line1: str
    line2: Optional[str] = None
    country: Optional[str] = None
    pincode: Optional[str] = None
    phone: Optional[str] = None


@dataclass(frozen=True)
class HandoffLine:
    name: str
    quantity: int
    unit_price: Decimal
    variant: Optional[str] = None


def format_money(amount, currency: str = "INR") -> str:
    value = Decimal(amount or 0)
    if currency.upper() == "INR":
        return f"₹{value:,.2f}"
    return f"{currency.upper()} {value:,.2f}"


def build_handoff_message(
    customer: HandoffCustomer,
    address: HandoffAddress,
    lines: Iterable[HandoffLine],
    subtotal,
    currency: str = "INR",
) -> str:
    out = ["*New International Order* 🌍", ""]

    out.append("*Customer:*")
    out.append(f"ID: {customer.id if customer.id is not None else ''}")
    if customer.name:
        out.append(f"Name: {customer.name}")
    if customer.email:
        out.append(f"Email: {customer.email}")
    out.append("")

    out.append("*Ship To:*")
    out.append(address.name or "")
    out.append(", ".join(p for p in (address.line1, address.line2, address.country, address.pincode) if p))
    if address.phone:
        out.append(f"Phone: {address.phone}")
    out.append("")

    out.append("*Items:*")
    lines = list(lines)
    if not lines:
        out.append("• (No items listed)")
    for line in lines:
        label = f"{line.name} ({line.variant})" if line.variant else line.name
        line_total = Decimal(line.unit_price) * line.quantity
        out.append(f"• {label} × {line.quantity} — {format_money(line_total, currency)}")
    out.append("")

    out.append(f"*Total:* {format_money(subtotal, currency)}")
    return "\n".join(out)


def normalize_channel_number(raw: Optional[str]) -> str:
    """wa.me wants digits only: no spaces, dashes or '+'."""
    return "".join(re.findall(r"\d+", raw or ""))


def build_deep_link(channel_address: Optional[str], message: Optional[str] = None) -> str:
    number = normalize_channel_number(channel_address)
    base = f"{WA_BASE}/{number}" if number else WA_BASE
    if message:
        return f"{base}?text={quote(message, safe='')}"
    return base
