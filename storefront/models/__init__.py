from storefront.models.address import Address
from storefront.models.delivery_partner import DeliveryPartner
from storefront.models.delivery_fee_rule import DeliveryFeeRule, RuleScope
from storefront.models.coupon import Coupon, CouponRedemption, DiscountType
from storefront.models.order_item import OrderItem
from storefront.models.order import Order
from storefront.models.payment import Payment
from storefront.models.order_event import OrderEvent
from storefront.models.store_settings import StoreSettings

# add ALL models here
