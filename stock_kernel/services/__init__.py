"""Services for the stock kernel (write side)."""

from stock_kernel.services.access_gate import AccessGate
from stock_kernel.services.catalog import CatalogProduct, DatabaseProductCatalog, ProductCatalog
from stock_kernel.services.count_workflow import CountWorkflow
from stock_kernel.services.kernel import StockKernel, build_stock_kernel
from stock_kernel.services.reconciliation_applier import ReconciliationApplier
from stock_kernel.services.stock_ledger import StockLedger

__all__ = [
    "AccessGate",
    "CatalogProduct",
    "CountWorkflow",
    "DatabaseProductCatalog",
    "ProductCatalog",
    "ReconciliationApplier",
    "StockKernel",
    "StockLedger",
    "build_stock_kernel",
]
