"""Validation and normalization of AI-extracted bank statement data.

This module is the trust boundary between whatever the AI normalization step returned and the data
the rest of the service relies on. Every function is pure: inputs are never mutated, nothing is
raised for bad input, and each call returns a :class:`ValidationResult` holding either the
normalized value or every problem found.

Dates are canonicalized to ``YYYY-MM-DD`` (day-first for ambiguous slash, dash and dot forms, as
bank statements use), monetary values to finite floats, and a transaction may carry a debit or a
credit but never both.
"""

import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import StrEnum
from typing import Any

from statement_api.core.models import AccountType


class IssueKind(StrEnum):
    """Kinds of validation failure."""

    INVALID_DATE = "InvalidDate"
    INVALID_AMOUNT = "InvalidAmount"
    INVALID_TYPE = "InvalidType"
    DEBIT_CREDIT_CONFLICT = "DebitCreditConflict"
    MISSING_FIELD = "MissingField"
    INVALID_ACCOUNT_TYPE = "InvalidAccountType"
    INVALID_STRUCTURE = "InvalidStructure"


@dataclass(frozen=True)
class ValidationIssue:
    """One problem found in a value, with the path leading to it."""

    kind: IssueKind
    message: str
    path: str = ""

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message

    def at(self, prefix: str) -> "ValidationIssue":
        """Return the issue nested under ``prefix``."""
        path = f"{prefix} {self.path}" if self.path else prefix
        return ValidationIssue(self.kind, self.message, path)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation: the normalized value, or the issues preventing it."""

    value: Any = None
    issues: tuple[ValidationIssue, ...] = field(default_factory=tuple)

    @property
    def is_valid(self) -> bool:
        return not self.issues

    @property
    def error(self) -> str | None:
        """All issues joined into one message, or None when valid."""
        if not self.issues:
            return None
        return "; ".join(str(issue) for issue in self.issues)

    @property
    def kinds(self) -> set[IssueKind]:
        return {issue.kind for issue in self.issues}


def _ok(value: Any) -> ValidationResult:
    return ValidationResult(value=value)


def _fail(kind: IssueKind, message: str) -> ValidationResult:
    return ValidationResult(issues=(ValidationIssue(kind, message),))


# --- Dates ---

ISO_DATE_RE = re.compile(r"^([0-9]{4})-([0-9]{2})-([0-9]{2})$")
# (pattern, index of year/month/day groups)
DATE_FORMATS: tuple[tuple[re.Pattern[str], tuple[int, int, int]], ...] = (
    (re.compile(r"^([0-9]{1,2})/([0-9]{1,2})/([0-9]{4})$"), (3, 2, 1)),
    (re.compile(r"^([0-9]{1,2})-([0-9]{1,2})-([0-9]{4})$"), (3, 2, 1)),
    (re.compile(r"^([0-9]{4})/([0-9]{1,2})/([0-9]{1,2})$"), (1, 2, 3)),
    (re.compile(r"^([0-9]{1,2})\.([0-9]{1,2})\.([0-9]{4})$"), (3, 2, 1)),
)


def _calendar_date(year: str, month: str, day: str) -> date | None:
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def normalize_date(value: Any) -> ValidationResult:
    """Canonicalize a date to ``YYYY-MM-DD``; None and empty strings normalize to None."""
    if value is None:
        return _ok(None)
    if isinstance(value, date):
        return _ok(value.isoformat())
    if not isinstance(value, str):
        return _fail(IssueKind.INVALID_DATE, "Date must be a string or null")
    text = value.strip()
    if not text:
        return _ok(None)

    match = ISO_DATE_RE.match(text)
    if match:
        if _calendar_date(*match.groups()) is None:
            return _fail(IssueKind.INVALID_DATE, f"Invalid calendar date: {text}")
        return _ok(text)

    for pattern, (y, m, d) in DATE_FORMATS:
        match = pattern.match(text)
        if match:
            parsed = _calendar_date(match.group(y), match.group(m), match.group(d))
            if parsed is None:
                return _fail(IssueKind.INVALID_DATE, f"Invalid calendar date: {text}")
            return _ok(parsed.isoformat())

    return _fail(IssueKind.INVALID_DATE, f"Unable to parse date value: {text}")


# --- Amounts ---

AMOUNT_STRIP_RE = re.compile(r"[$£€¥₹,\s()]")


def normalize_amount(value: Any) -> ValidationResult:
    """Convert a monetary value to a finite number; None and empty strings normalize to None.

    Strings lose currency symbols, thousands separators, whitespace and enclosing parentheses
    before parsing. Parentheses do not flip the sign: debit and credit columns carry direction.
    """
    if value is None:
        return _ok(None)
    if isinstance(value, bool):
        return _fail(IssueKind.INVALID_TYPE, "Monetary amount must be a number, string, or null")
    if isinstance(value, int | float | Decimal):
        try:
            number = float(value)
        except OverflowError:
            return _fail(IssueKind.INVALID_AMOUNT, "Monetary amount is too large")
        if not math.isfinite(number):
            return _fail(IssueKind.INVALID_AMOUNT, "Monetary amount must be a finite number")
        return _ok(value if isinstance(value, int) else number)
    if isinstance(value, str):
        cleaned = AMOUNT_STRIP_RE.sub("", value)
        if not cleaned:
            return _ok(None)
        # float() also takes underscores and non-ASCII digits
        if not cleaned.isascii() or "_" in cleaned:
            return _fail(IssueKind.INVALID_AMOUNT, f"Unable to convert monetary amount to number: {value!r}")
        try:
            number = float(cleaned)
        except ValueError:
            return _fail(IssueKind.INVALID_AMOUNT, f"Unable to convert monetary amount to number: {value!r}")
        if not math.isfinite(number):
            return _fail(IssueKind.INVALID_AMOUNT, "Monetary amount must be a finite number")
        return _ok(number)
    return _fail(IssueKind.INVALID_TYPE, "Monetary amount must be a number, string, or null")


# --- Transactions ---

DEBIT_CREDIT_MESSAGE = "Transaction cannot have both debit and credit values populated"


def validate_exclusivity(transaction: Mapping[str, Any]) -> ValidationResult:
    """Fail when a transaction has both a debit and a credit."""
    if not isinstance(transaction, Mapping):
        return _fail(IssueKind.INVALID_STRUCTURE, "Transaction must be an object")
    if transaction.get("debit") is not None and transaction.get("credit") is not None:
        return _fail(IssueKind.DEBIT_CREDIT_CONFLICT, DEBIT_CREDIT_MESSAGE)
    return _ok(transaction)


def validate_transaction(transaction: Any) -> ValidationResult:
    """Normalize one transaction, collecting every problem instead of stopping at the first."""
    if not isinstance(transaction, Mapping):
        return _fail(IssueKind.INVALID_STRUCTURE, "Transaction must be an object")

    normalized = dict(transaction)
    issues: list[ValidationIssue] = []

    if transaction.get("date") in (None, ""):
        issues.append(ValidationIssue(IssueKind.MISSING_FIELD, "Date is required"))
    else:
        result = normalize_date(transaction.get("date"))
        if result.is_valid and result.value is None:
            issues.append(ValidationIssue(IssueKind.MISSING_FIELD, "Date is required"))
        elif result.is_valid:
            normalized["date"] = result.value
        else:
            issues.extend(issue.at("date") for issue in result.issues)

    description = transaction.get("description")
    if not isinstance(description, str) or not description.strip():
        issues.append(ValidationIssue(IssueKind.MISSING_FIELD, "Description must be a non-empty string"))

    for name in ("debit", "credit", "balance"):
        result = normalize_amount(transaction.get(name))
        if result.is_valid:
            normalized[name] = result.value
        else:
            normalized[name] = transaction.get(name)
            issues.extend(issue.at(name) for issue in result.issues)

    exclusivity = validate_exclusivity(normalized)
    issues.extend(exclusivity.issues)

    if issues:
        return ValidationResult(issues=tuple(issues))
    return _ok(normalized)


def validate_account_transactions(transactions: Any) -> ValidationResult:
    """Validate every transaction of an account; issues name the offending index."""
    if isinstance(transactions, str | bytes) or not isinstance(transactions, Sequence):
        return _fail(IssueKind.INVALID_STRUCTURE, "Transactions must be an array")

    validated: list[dict[str, Any]] = []
    issues: list[ValidationIssue] = []
    for index, transaction in enumerate(transactions):
        result = validate_transaction(transaction)
        if result.is_valid:
            validated.append(result.value)
        else:
            issues.extend(issue.at(f"Transaction {index}") for issue in result.issues)

    if issues:
        return ValidationResult(issues=tuple(issues))
    return _ok(validated)


# --- Statement payload ---

ACCOUNT_AMOUNT_FIELDS = ("openingBalance", "closingBalance")
ACCOUNT_DATE_FIELDS = ("statementStartDate", "statementEndDate")
ACCOUNT_TYPES = frozenset(member.value for member in AccountType)


def _validate_account(account: Any) -> ValidationResult:
    if not isinstance(account, Mapping):
        return _fail(IssueKind.INVALID_STRUCTURE, "Account must be an object")

    normalized = dict(account)
    issues: list[ValidationIssue] = []

    if "transactions" not in account:
        issues.append(ValidationIssue(IssueKind.MISSING_FIELD, "Account must have a transactions array"))
    else:
        result = validate_account_transactions(account["transactions"])
        if result.is_valid:
            normalized["transactions"] = result.value
        else:
            issues.extend(result.issues)

    for name in ACCOUNT_AMOUNT_FIELDS:
        result = normalize_amount(account.get(name))
        if result.is_valid:
            normalized[name] = result.value
        else:
            issues.extend(issue.at(name) for issue in result.issues)

    for name in ACCOUNT_DATE_FIELDS:
        result = normalize_date(account.get(name))
        if result.is_valid:
            normalized[name] = result.value
        else:
            issues.extend(issue.at(name) for issue in result.issues)

    account_type = account.get("accountType")
    if account_type is not None and account_type not in ACCOUNT_TYPES:
        issues.append(
            ValidationIssue(
                IssueKind.INVALID_ACCOUNT_TYPE,
                f'Invalid account type: {account_type}. Must be "Savings", "Current", or null',
            )
        )

    if issues:
        return ValidationResult(issues=tuple(issues))
    return _ok(normalized)


def validate_statement_payload(payload: Any) -> ValidationResult:
    """Check a whole statement payload and return it with every account normalized."""
    if not isinstance(payload, Mapping):
        return _fail(IssueKind.INVALID_STRUCTURE, "Normalized data must be an object")

    normalized = dict(payload)
    issues: list[ValidationIssue] = []

    file_name = payload.get("fileName")
    if not isinstance(file_name, str) or not file_name.strip():
        issues.append(ValidationIssue(IssueKind.MISSING_FIELD, "Normalized data must include a valid fileName"))

    accounts = payload.get("accounts")
    if isinstance(accounts, str | bytes) or not isinstance(accounts, Sequence):
        issues.append(ValidationIssue(IssueKind.INVALID_STRUCTURE, "Normalized data must include an accounts array"))
    else:
        validated_accounts = []
        for index, account in enumerate(accounts):
            result = _validate_account(account)
            if result.is_valid:
                validated_accounts.append(result.value)
            else:
                issues.extend(issue.at(f"Account {index}") for issue in result.issues)
        normalized["accounts"] = validated_accounts

    if issues:
        return ValidationResult(issues=tuple(issues))
    return _ok(normalized)
