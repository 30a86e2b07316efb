from .inventory import Product, Lot, LotMovement
from .quotations import Quotation, QuotationLine
from .sales import Sale, SaleLine, Payment

__all__ = [
    'Product', 'Lot', 'LotMovement',
    'Quotation', 'QuotationLine',
    'Sale', 'SaleLine', 'Payment',
]
