from .tenancy import Shop, Branch
from .auth import User, SessionToken
from .customers import Customer, LedgerEntry
from .inventory import Item
from .invoices import Invoice, InvoiceItem
from .payments import Payment, BankAccount, BankTransaction
from .purchasing import Vendor, PurchaseOrder, PurchaseOrderItem, VendorPayment

__all__ = [
    'Shop', 'Branch',
    'User', 'SessionToken',
    'Customer', 'LedgerEntry',
    'Item',
    'Invoice', 'InvoiceItem',
    'Payment', 'BankAccount', 'BankTransaction',
    'Vendor', 'PurchaseOrder', 'PurchaseOrderItem', 'VendorPayment',
]
