from enum import Enum


class FulfillmentFlow(str, Enum):
    DOMESTIC = "DOMESTIC"
    INTERNATIONAL = "INTERNATIONAL"


def flow_for_country(country_id, domestic_country_id: int) -> FulfillmentFlow:
    if country_id is not None and int(country_id) == int(domestic_country_id):
        return FulfillmentFlow.DOMESTIC
    return FulfillmentFlow.INTERNATIONAL
