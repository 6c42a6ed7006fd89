import asyncio
import logging
from decimal import Decimal
from typing import Callable, Optional

from storefront.orchestrator.api_client import ApiError, ApiTransportError, StorefrontClient
from storefront.orchestrator.errors import QuoteUnavailable
from storefront.orchestrator.models import Address, ShippingQuote
from storefront.orchestrator.normalize import MalformedResponse, shipping_quote_from_wire

logger = logging.getLogger(__name__)

# (seq, quote, error): exactly one of quote/error is set
QuoteCallback = Callable[[int, Optional[ShippingQuote], Optional[QuoteUnavailable]], None]


class ShippingFeeEstimator:
    """
    Debounced, sequence-numbered shipping quotes.

    Each ``schedule`` call issues a new sequence number and cancels the
    previous request. A result is delivered only while its sequence number is
    still the latest one issued, so a slow answer can never overwrite a newer
    quote.
    """

    def __init__(self, client: StorefrontClient, debounce_seconds: float = 0.3):
        self.client = client
        self.debounce_seconds = debounce_seconds
        self._seq = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def latest_seq(self) -> int:
        return self._seq

    def is_current(self, seq: int) -> bool:
        return seq == self._seq

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    async def quote(self, subtotal: Decimal, address: Address) -> ShippingQuote:
        try:
            data = await self.client.preview_shipping(subtotal, address.state_id, address.district_id)
            return shipping_quote_from_wire(data, address_id=address.id, subtotal=subtotal)
        except ApiError as e:
            raise QuoteUnavailable(e.message or QuoteUnavailable.default_message) from e
        except (ApiTransportError, MalformedResponse) as e:
            logger.warning(f"Shipping quote failed for address {address.id}: {e}")
            raise QuoteUnavailable() from e

    def schedule(self, subtotal: Decimal, address: Address, on_settled: QuoteCallback) -> int:
        self._seq += 1
        seq = self._seq
        self._cancel_task()
        self._task = asyncio.get_running_loop().create_task(self._run(seq, subtotal, address, on_settled))
        logger.debug(f"Shipping quote #{seq} scheduled: subtotal={subtotal} address={address.id}")
        return seq

    async def _run(self, seq: int, subtotal: Decimal, address: Address, on_settled: QuoteCallback):
        if self.debounce_seconds > 0:
            await asyncio.sleep(self.debounce_seconds)

        try:
            quote = await self.quote(subtotal, address)
        except QuoteUnavailable as e:
            if self.is_current(seq):
                on_settled(seq, None, e)
            return

        if not self.is_current(seq):
            logger.info(f"Discarding stale shipping quote #{seq} (latest #{self._seq})")
            return

        on_settled(seq, quote, None)

    def invalidate(self):
        """Forget everything in flight. Later answers for older sequence numbers are dropped."""
        self._seq += 1
        self._cancel_task()

    def _cancel_task(self):
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self):
        """Wait for the request in flight, if any, to settle."""
        task = self._task
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.cancelled():
                raise
