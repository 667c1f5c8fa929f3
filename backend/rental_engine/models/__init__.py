from .catalog import User, Address, Product
from .quotations import Quotation, QuotationLine
from .orders import RentalOrder, OrderLine, Reservation, Invoice, Pickup, PickupItem
from .returns import Return, ReturnItem
from .ledger import StockMovement, DocumentSequence
from .notifications import Notification

__all__ = [
    'User', 'Address', 'Product',
    'Quotation', 'QuotationLine',
    'RentalOrder', 'OrderLine', 'Reservation', 'Invoice', 'Pickup', 'PickupItem',
    'Return', 'ReturnItem',
    'StockMovement', 'DocumentSequence',
    'Notification',
]
