import logging
from typing import List, Optional

from storefront.constants.fulfillment import FulfillmentFlow, flow_for_country
from storefront.orchestrator.api_client import ApiError, ApiTransportError, StorefrontClient
from storefront.orchestrator.errors import CheckoutError
from storefront.orchestrator.models import Address, DeliveryPartner
from storefront.orchestrator.normalize import MalformedResponse, address_from_wire, partner_from_wire

logger = logging.getLogger(__name__)


class AddressDirectory:
    """Read-only view of the customer's saved addresses and the courier list."""

    def __init__(self, client: StorefrontClient, domestic_country_id: int):
        self.client = client
        self.domestic_country_id = domestic_country_id

    async def list(self, customer_id: int) -> List[Address]:
        try:
            raw = await self.client.list_addresses(customer_id)
            addresses = [address_from_wire(a) for a in raw or []]
        except (ApiError, ApiTransportError, MalformedResponse) as e:
            logger.warning(f"Could not load addresses for customer {customer_id}: {e}")
            raise CheckoutError("Could not load your addresses. Please retry.") from e

        return [a for a in addresses if a.active]

    async def partners(self) -> List[DeliveryPartner]:
        try:
            raw = await self.client.list_active_partners()
            return [partner_from_wire(p) for p in raw or []]
        except (ApiError, ApiTransportError, MalformedResponse) as e:
            logger.warning(f"Could not load delivery partners: {e}")
            raise CheckoutError("Could not load delivery partners. Please retry.") from e

    def flow_of(self, address: Address) -> FulfillmentFlow:
        return flow_for_country(address.country_id, self.domestic_country_id)

    def for_flow(self, addresses: List[Address], flow: FulfillmentFlow) -> List[Address]:
        return [a for a in addresses if self.flow_of(a) == flow]

    def default_for(self, addresses: List[Address], flow: FulfillmentFlow) -> Optional[Address]:
        candidates = self.for_flow(addresses, flow)
        for address in candidates:
            if address.is_default:
                return address
        return candidates[0] if candidates else None
