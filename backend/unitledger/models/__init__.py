from .inventory import Product, StockMovement, InventoryUnit, StockAlert
from .customers import Customer
from .consignment import Consignee, Consignment, ConsignmentDetail, Payment

__all__ = [
    'Product', 'StockMovement', 'InventoryUnit', 'StockAlert',
    'Customer',
    'Consignee', 'Consignment', 'ConsignmentDetail', 'Payment',
]
