from .tenancy import Business, Shop
from .auth import User, BusinessMember, ShopMember, SessionToken
from .customers import Customer, WalletTransaction
from .catalog import Product, ShopProduct
from .purchases import Purchase, PurchaseItem, Payment, Waybill
from .documents import AuditLog, DocumentSequence

__all__ = [
    'Business', 'Shop',
    'User', 'BusinessMember', 'ShopMember', 'SessionToken',
    'Customer', 'WalletTransaction',
    'Product', 'ShopProduct',
    'Purchase', 'PurchaseItem', 'Payment', 'Waybill',
    'AuditLog', 'DocumentSequence',
]
