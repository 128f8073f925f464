"""SNT billing ledger: charges, invoices, payments and the journal behind them."""

__version__ = "0.1.0"
