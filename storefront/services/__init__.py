"""
Order subsystem services.
"""
from .addresses import AddressResolver
from .gateway import RazorpayGateway, GatewayOrder, to_minor_units, from_minor_units, compute_signature
from .holds import StockHoldRegistry
from .inventory import InventoryLedger
from .notifications import EmailNotifier, render_order_email
from .orders import OrderService
from .queries import OrderQueryService

__all__ = [
    "AddressResolver",
    "RazorpayGateway",
    "GatewayOrder",
    "to_minor_units",
    "from_minor_units",
    "compute_signature",
    "StockHoldRegistry",
    "InventoryLedger",
    "EmailNotifier",
    "render_order_email",
    "OrderService",
    "OrderQueryService",
]
