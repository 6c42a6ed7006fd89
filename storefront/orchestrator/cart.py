import logging
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from storefront.orchestrator.models import CartLine, ZERO

logger = logging.getLogger(__name__)

CartListener = Callable[["CartStore"], None]


class CartStore:
    """
    Shopping cart shared with the rest of the app.

    Passed into the checkout by reference. Every mutation bumps ``version`` and
    notifies listeners synchronously.
    """

    def __init__(self, lines: Optional[List[CartLine]] = None):
        self._lines: List[CartLine] = list(lines or [])
        self._listeners: List[CartListener] = []
        self.version = 0

    @property
    def lines(self) -> Tuple[CartLine, ...]:
        return tuple(self._lines)

    @property
    def subtotal(self) -> Decimal:
        return sum((line.line_total for line in self._lines), ZERO)

    @property
    def item_count(self) -> int:
        return sum(line.quantity for line in self._lines)

    def is_empty(self) -> bool:
        return not self._lines

    def subscribe(self, listener: CartListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self):
        self.version += 1
        for listener in list(self._listeners):
            listener(self)

    def add(self, line: CartLine):
        for i, existing in enumerate(self._lines):
            if existing.line_id == line.line_id:
                self._lines[i] = CartLine(
                    line_id=existing.line_id,
                    product_id=existing.product_id,
                    name=existing.name,
                    unit_price=existing.unit_price,
                    quantity=existing.quantity + line.quantity,
                    selected_option_ids=existing.selected_option_ids,
                    variant_label=existing.variant_label,
                )
                break
        else:
            self._lines.append(line)
        self._changed()

    def set_quantity(self, line_id: str, quantity: int):
        if quantity <= 0:
            self.remove(line_id)
            return
        self._lines = [
            CartLine(
                line_id=l.line_id,
                product_id=l.product_id,
                name=l.name,
                unit_price=l.unit_price,
                quantity=quantity,
                selected_option_ids=l.selected_option_ids,
                variant_label=l.variant_label,
            ) if l.line_id == line_id else l
            for l in self._lines
        ]
        self._changed()

    def remove(self, line_id: str):
        before = len(self._lines)
        self._lines = [l for l in self._lines if l.line_id != line_id]
        if len(self._lines) != before:
            self._changed()

    def clear(self):
        if not self._lines:
            return
        logger.info(f"Clearing cart ({len(self._lines)} lines)")
        self._lines = []
        self._changed()
