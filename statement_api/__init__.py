"""Bank Statement API: extraction of accounts and transactions from bank statement PDFs."""

__version__ = "1.0.0"
