"""Tests for date and amount normalization and statement payload validation."""

import math
from decimal import Decimal

import pytest

from statement_api.core.validation import (
    DEBIT_CREDIT_MESSAGE,
    IssueKind,
    normalize_amount,
    normalize_date,
    validate_account_transactions,
    validate_exclusivity,
    validate_statement_payload,
    validate_transaction,
)
from tests.fakes import statement_payload


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2024-03-15", "2024-03-15"),
        ("15/03/2024", "2024-03-15"),
        ("5/3/2024", "2024-03-05"),
        ("15-03-2024", "2024-03-15"),
        ("2024/3/15", "2024-03-15"),
        ("15.03.2024", "2024-03-15"),
        ("  2024-02-29 ", "2024-02-29"),
        (None, None),
        ("", None),
    ],
)
def test_normalize_date_accepted_forms(raw: object, expected: str | None) -> None:
    """Accepted forms come back as YYYY-MM-DD; empty input is a valid null."""
    result = normalize_date(raw)
    if not result.is_valid or result.value != expected:
        msg = f"normalize_date({raw!r}) gave {result}, expected {expected!r}"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    "raw",
    [
        "2024-13-01",
        "2023-02-29",
        "31/04/2024",
        "March 3rd",
        "2024-3-1",
        "12/2024",
        "\u0662\u0660\u0662\u0664-01-01",
        20240301,
    ],
)
def test_normalize_date_rejects_invalid(raw: object) -> None:
    """Unparseable and calendrically impossible dates fail with InvalidDate."""
    result = normalize_date(raw)
    if result.is_valid or result.kinds != {IssueKind.INVALID_DATE}:
        msg = f"Expected InvalidDate for {raw!r}, got {result}"
        raise AssertionError(msg)


@pytest.mark.parametrize("raw", ["2024-03-15", "15/03/2024", "1.2.2024", "2024/12/1"])
def test_normalize_date_is_idempotent(raw: str) -> None:
    """Normalizing an already normalized date changes nothing."""
    once = normalize_date(raw).value
    twice = normalize_date(once).value
    if once != twice:
        msg = f"normalize_date is not idempotent for {raw!r}: {once!r} -> {twice!r}"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("$1,234.56", 1234.56),
        ("£ 2,000", 2000.0),
        ("(45.10)", 45.10),
        ("-12.5", -12.5),
        (" 7 ", 7.0),
        (42, 42),
        (3.5, 3.5),
        (Decimal("10.25"), 10.25),
        ("", None),
        (None, None),
    ],
)
def test_normalize_amount(raw: object, expected: float | None) -> None:
    """Currency strings become numbers; parentheses are stripped without changing the sign."""
    result = normalize_amount(raw)
    if not result.is_valid or result.value != expected:
        msg = f"normalize_amount({raw!r}) gave {result}, expected {expected!r}"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    ("raw", "kind"),
    [
        (math.inf, IssueKind.INVALID_AMOUNT),
        (math.nan, IssueKind.INVALID_AMOUNT),
        ("inf", IssueKind.INVALID_AMOUNT),
        ("12abc", IssueKind.INVALID_AMOUNT),
        ("1_000", IssueKind.INVALID_AMOUNT),
        ("\u0661\u0662", IssueKind.INVALID_AMOUNT),
        (10**400, IssueKind.INVALID_AMOUNT),
        (True, IssueKind.INVALID_TYPE),
        ([1], IssueKind.INVALID_TYPE),
        ({"amount": 1}, IssueKind.INVALID_TYPE),
    ],
)
def test_normalize_amount_failures(raw: object, kind: IssueKind) -> None:
    """Non-finite and unparseable amounts fail with the matching kind."""
    result = normalize_amount(raw)
    if result.is_valid or result.kinds != {kind}:
        msg = f"Expected {kind} for {raw!r}, got {result}"
        raise AssertionError(msg)


def test_exclusivity_conflict() -> None:
    """Both debit and credit populated is a DebitCreditConflict."""
    result = validate_exclusivity({"debit": 100, "credit": 50})
    if result.is_valid or result.error != DEBIT_CREDIT_MESSAGE:
        msg = f"Expected debit/credit conflict, got {result}"
        raise AssertionError(msg)
    if not validate_exclusivity({"debit": 0, "credit": None}).is_valid:
        msg = "A zero debit with no credit must be allowed"
        raise AssertionError(msg)


def test_validate_transaction_normalizes_fields() -> None:
    """A valid transaction comes back with canonical date and numeric amounts, input untouched."""
    transaction = {"date": "02/03/2024", "description": "Coffee", "debit": "$3.20", "credit": "", "balance": "1,000"}
    result = validate_transaction(transaction)
    expected = {"date": "2024-03-02", "description": "Coffee", "debit": 3.2, "credit": None, "balance": 1000.0}
    if not result.is_valid or result.value != expected:
        msg = f"Unexpected normalized transaction: {result}"
        raise AssertionError(msg)
    if transaction["date"] != "02/03/2024":
        msg = "validate_transaction must not mutate its input"
        raise AssertionError(msg)


def test_validate_transaction_accumulates_issues() -> None:
    """Every problem is reported in one pass."""
    result = validate_transaction({"date": "2024-02-30", "description": " ", "debit": "abc", "credit": 5})
    expected = {IssueKind.INVALID_DATE, IssueKind.MISSING_FIELD, IssueKind.INVALID_AMOUNT, IssueKind.DEBIT_CREDIT_CONFLICT}
    if result.kinds != expected:
        msg = f"Expected kinds {expected}, got {result.kinds}"
        raise AssertionError(msg)


def test_validate_transaction_requires_date() -> None:
    """A transaction without a date is missing a required field."""
    for transaction in ({"description": "Fee", "debit": 1}, {"date": "   ", "description": "Fee", "debit": 1}):
        result = validate_transaction(transaction)
        if result.is_valid or IssueKind.MISSING_FIELD not in result.kinds:
            msg = f"Expected MissingField for {transaction}, got {result}"
            raise AssertionError(msg)


def test_validate_account_transactions_names_index() -> None:
    """Aggregate failures name the offending transaction index."""
    result = validate_account_transactions(
        [
            {"date": "2024-01-01", "description": "ok", "credit": 1},
            {"date": "2024-01-02", "description": "bad", "debit": 1, "credit": 2},
        ]
    )
    if result.is_valid or "Transaction 1" not in (result.error or ""):
        msg = f"Expected failure naming Transaction 1, got {result.error}"
        raise AssertionError(msg)
    if validate_account_transactions("not a list").kinds != {IssueKind.INVALID_STRUCTURE}:
        msg = "A string is not a transactions array"
        raise AssertionError(msg)


def test_validated_transactions_never_hold_debit_and_credit() -> None:
    """After successful validation no transaction has both a debit and a credit."""
    result = validate_statement_payload(statement_payload())
    if not result.is_valid:
        msg = f"Expected a valid payload, got {result.error}"
        raise AssertionError(msg)
    for account in result.value["accounts"]:
        for transaction in account["transactions"]:
            if transaction["debit"] is not None and transaction["credit"] is not None:
                msg = f"Transaction holds both debit and credit: {transaction}"
                raise AssertionError(msg)


def test_validate_statement_payload_normalizes_accounts() -> None:
    """Account dates and balances are canonicalized alongside their transactions."""
    account = validate_statement_payload(statement_payload()).value["accounts"][0]
    if account["statementStartDate"] != "2024-03-01" or account["openingBalance"] != 1000.0:
        msg = f"Account fields not normalized: {account}"
        raise AssertionError(msg)
    if account["transactions"][0]["credit"] != 200.5 or account["transactions"][1]["date"] != "2024-03-05":
        msg = f"Transactions not normalized: {account['transactions']}"
        raise AssertionError(msg)


@pytest.mark.parametrize(
    ("payload", "kind"),
    [
        ({"accounts": []}, IssueKind.MISSING_FIELD),
        ({"fileName": "a.pdf", "accounts": "none"}, IssueKind.INVALID_STRUCTURE),
        ({"fileName": "a.pdf", "accounts": [{"bankName": "X"}]}, IssueKind.MISSING_FIELD),
        (statement_payload(accountType="Checking"), IssueKind.INVALID_ACCOUNT_TYPE),
        (statement_payload(closingBalance="n/a"), IssueKind.INVALID_AMOUNT),
        (statement_payload(statementEndDate="31/02/2024"), IssueKind.INVALID_DATE),
        ([], IssueKind.INVALID_STRUCTURE),
    ],
)
def test_validate_statement_payload_failures(payload: object, kind: IssueKind) -> None:
    """Top-level and account-level contract violations are reported with their kind."""
    result = validate_statement_payload(payload)
    if result.is_valid or kind not in result.kinds:
        msg = f"Expected {kind}, got {result}"
        raise AssertionError(msg)


def test_empty_accounts_are_valid() -> None:
    """A statement with no accounts is still a valid statement."""
    result = validate_statement_payload({"fileName": "empty.pdf", "accounts": []})
    if not result.is_valid or result.value["accounts"] != []:
        msg = f"Expected valid empty statement, got {result}"
        raise AssertionError(msg)
