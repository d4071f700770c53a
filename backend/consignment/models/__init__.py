from .tenancy import Tenant
from .catalog import Product, Client
from .balances import ProductStock, ClientBalance
from .fronted import FrontedRecord, ReconciliationBatch, ReturnScanEntry, FrontedPayment, LedgerLock
from .ledger import LedgerEvent

__all__ = [
    'Tenant',
    'Product', 'Client',
    'ProductStock', 'ClientBalance',
    'FrontedRecord', 'ReconciliationBatch', 'ReturnScanEntry', 'FrontedPayment', 'LedgerLock',
    'LedgerEvent',
]
