"""Projection of stored statement data onto the public response shape.

Processed data may carry whatever extra keys the AI step produced (confidence scores, raw blocks,
notes). Only the fields of :class:`BankStatementData`, :class:`BankAccount` and
:class:`Transaction` leave the service; missing fields become null.
"""

from collections.abc import Mapping, Sequence
from typing import Any

from statement_api.core.models import BankAccount, BankStatementData, Transaction, model_field_aliases

STATEMENT_FIELDS = tuple(name for name in model_field_aliases(BankStatementData) if name != "accounts")
ACCOUNT_FIELDS = tuple(name for name in model_field_aliases(BankAccount) if name != "transactions")
TRANSACTION_FIELDS = model_field_aliases(Transaction)


def _as_list(value: Any) -> list[Any]:
    if isinstance(value, str | bytes) or not isinstance(value, Sequence):
        return []
    return list(value)


def sanitize_transactions(transactions: Any) -> list[dict[str, Any]]:
    """Project each transaction onto the public transaction fields."""
    return [
        {name: transaction.get(name) for name in TRANSACTION_FIELDS}
        for transaction in _as_list(transactions)
        if isinstance(transaction, Mapping)
    ]


def sanitize_account(account: Mapping[str, Any]) -> dict[str, Any]:
    """Project one account onto the public account fields."""
    sanitized = {name: account.get(name) for name in ACCOUNT_FIELDS}
    sanitized["transactions"] = sanitize_transactions(account.get("transactions"))
    return sanitized


def sanitize_processed_data(processed_data: Any) -> dict[str, Any]:
    """Return ``{"fileName", "accounts"}`` containing only recognized statement fields."""
    if not isinstance(processed_data, Mapping):
        processed_data = {}
    sanitized = {name: processed_data.get(name) for name in STATEMENT_FIELDS}
    sanitized["accounts"] = [
        sanitize_account(account)
        for account in _as_list(processed_data.get("accounts"))
        if isinstance(account, Mapping)
    ]
    return sanitized
