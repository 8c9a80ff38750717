"""
Bank/ledger transaction importer.

Amount sign: negative is money out. A file may carry one signed amount
column or separate debit/credit columns; debit becomes negative, credit
positive.
"""

from decimal import Decimal
from typing import Any

from models.imports import EntityType, FieldMapping, ImportContext, TransactionCandidate
from parsers.entities.base import EntityImporter, RowReader, field_label
from parsers.value_parsers import parse_date, parse_decimal
from utils.text_utils import clean_text

ZERO = Decimal("0")


class TransactionImporter(EntityImporter):
    entity_type = EntityType.TRANSACTIONS
    table = "transactions"
    candidate_cls = TransactionCandidate

    synonyms = {
        "date": [
            "date", "transaction date", "posted date", "posting date",
            "trans date", "value date", "booking date", "posted",
        ],
        "amount": [
            "amount", "value", "price", "total", "debit credit",
            "transaction amount", "net amount", "sum",
        ],
        "description": [
            "description", "memo", "payee", "merchant", "details",
            "narrative", "transaction description", "name", "reference",
        ],
        "debit": ["debit", "debit amount", "withdrawal", "withdrawals", "money out", "paid out"],
        "credit": ["credit", "credit amount", "deposit", "deposits", "money in", "paid in"],
        "notes": ["notes", "note", "comment", "comments", "remarks"],
    }

    required_mapping = ("date", "description")
    required_fields = ("date", "amount", "description")

    duplicate_detectable = True

    def validate_mapping(self, mapping: FieldMapping, headers: list[str]) -> list[str]:
        errors = super().validate_mapping(mapping, headers)
        if not (mapping.is_mapped("amount") or mapping.is_mapped("debit") or mapping.is_mapped("credit")):
            errors.append("Amount column (or debit/credit columns) is required")
        return errors

    def read_row(self, row: RowReader) -> tuple[dict[str, Any], dict[str, str], list[str]]:
        errors: dict[str, str] = {}

        raw_date = row.get("date")
        parsed_date = parse_date(raw_date)
        if raw_date and parsed_date is None:
            errors["date"] = f"Date '{raw_date}' is not a recognized date"

        amount = self._read_amount(row, errors)

        values = {
            "date": parsed_date,
            "amount": amount,
            "description": clean_text(row.get("description"), max_length=500),
            "notes": clean_text(row.get("notes")),
        }
        return values, errors, []

    def _read_amount(self, row: RowReader, errors: dict[str, str]):
        """Signed amount from the amount column, else from debit/credit."""
        raw_amount = row.get("amount")
        if raw_amount:
            amount = parse_decimal(raw_amount)
            if amount is None:
                errors["amount"] = f"Amount '{raw_amount}' is not a number"
            return amount

        raw_debit = row.get("debit")
        raw_credit = row.get("credit")
        debit = parse_decimal(raw_debit)
        credit = parse_decimal(raw_credit)

        for raw, parsed, field in ((raw_debit, debit, "debit"), (raw_credit, credit, "credit")):
            if raw and parsed is None:
                errors["amount"] = f"{field_label(field)} '{raw}' is not a number"
                return None

        if debit is None and credit is None:
            return None

        debit = debit or ZERO
        credit = credit or ZERO

        if debit != ZERO and credit != ZERO:
            errors["amount"] = "Both debit and credit are filled in"
            return None

        if debit != ZERO:
            return -abs(debit)
        return abs(credit)

    def to_record(self, candidate: TransactionCandidate, context: ImportContext) -> dict[str, Any]:
        return {
            **self._base_record(context),
            "account_id": context.account_id,
            "date": candidate.date.isoformat(),
            "amount": float(candidate.amount),
            "description": candidate.description,
            "notes": candidate.notes,
        }
