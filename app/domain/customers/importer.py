"""
Customer import from CSV or XLSX uploads.

Headers are matched by alias so spreadsheets exported from other tools
(often with Portuguese column names) import without renaming columns.
"""

import csv
import io
import logging
from datetime import date, datetime
from typing import Any, Optional

import openpyxl
from fastapi import HTTPException
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models import Tenant
from ...models_customer import Customer
from ...plan_limits import check_limit
from ...shared.dates import parse_date
from ...shared.validators import normalize_phone, validate_cpf, validate_email

logger = logging.getLogger(__name__)

DUPLICATE_ACTIONS = ("SKIP", "UPDATE", "CREATE")
PREVIEW_ROWS = 10
MAX_ROWS = 5000

HEADER_ALIASES = {
    "name": ("name", "nome", "full_name", "nome_completo"),
    "email": ("email", "e-mail", "e_mail"),
    "phone": ("phone", "telefone", "celular", "whatsapp", "mobile"),
    "cpf": ("cpf", "documento"),
    "birth_date": ("birthdate", "birth_date", "nascimento", "data_nascimento", "data de nascimento"),
    "gender": ("gender", "sexo", "genero"),
    "tags": ("tags", "etiquetas"),
    "notes": ("notes", "observacoes", "observações", "obs"),
}


def _canonical(header: Any) -> Optional[str]:
    key = str(header or "").strip().lower()
    for field, aliases in HEADER_ALIASES.items():
        if key in aliases:
            return field
    return None


def read_rows(filename: str, content: bytes) -> list[dict]:
    """Read an uploaded CSV/XLSX into dicts keyed by canonical field names"""
    name = (filename or "").lower()
    if name.endswith(".xlsx"):
        workbook = openpyxl.load_workbook(io.BytesIO(content), read_only=True, data_only=True)
        try:
            sheet = workbook.worksheets[0]
            raw = [list(row) for row in sheet.iter_rows(values_only=True)]
        finally:
            workbook.close()
    elif name.endswith(".csv"):
        text = content.decode("utf-8-sig", errors="replace")
        sample = text[:2048]
        try:
            dialect = csv.Sniffer().sniff(sample, delimiters=",;\t")
        except csv.Error:
            dialect = csv.excel
        raw = list(csv.reader(io.StringIO(text), dialect))
    else:
        raise HTTPException(status_code=400, detail="Only .csv and .xlsx files are supported")

    if not raw:
        return []
    headers = [_canonical(h) for h in raw[0]]
    rows = []
    for values in raw[1:]:
        if not any(v not in (None, "") for v in values):
            continue
        row = {}
        for field, value in zip(headers, values):
            if field:
                row[field] = value
        rows.append(row)
    if len(rows) > MAX_ROWS:
        raise HTTPException(status_code=400, detail=f"Import is limited to {MAX_ROWS} rows per file")
    return rows


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def clean_row(row: dict) -> dict:
    """Normalize one row. Raises ValueError describing the first problem"""
    name = _text(row.get("name"))
    if not name:
        raise ValueError("Name is required")

    phone = _text(row.get("phone"))
    email = _text(row.get("email"))
    if not phone and not email:
        raise ValueError("Phone or email is required")

    birth = row.get("birth_date")
    if isinstance(birth, datetime):
        birth = birth.date()
    elif not isinstance(birth, date):
        birth = parse_date(_text(birth))

    tags = row.get("tags")
    if isinstance(tags, str):
        tags = [t.strip() for t in tags.replace(";", ",").split(",") if t.strip()]

    return {
        "name": name,
        "phone": normalize_phone(phone) if phone else None,
        "email": validate_email(email) if email else None,
        "cpf": validate_cpf(_text(row.get("cpf"))),
        "birth_date": birth,
        "gender": _text(row.get("gender")),
        "tags": tags or [],
        "notes": _text(row.get("notes")),
    }


def validate_import(rows: list[dict]) -> dict:
    valid = []
    errors = []
    for number, row in enumerate(rows, start=2):
        try:
            valid.append(clean_row(row))
        except ValueError as e:
            errors.append({"row": number, "error": str(e)})
    return {
        "total_rows": len(rows),
        "valid_rows": len(valid),
        "invalid_rows": len(errors),
        "errors": errors,
        "preview": valid[:PREVIEW_ROWS],
    }


def _find_existing(db: Session, tenant_id: str, data: dict) -> Optional[Customer]:
    conditions = []
    if data.get("phone"):
        conditions.append(Customer.phone == data["phone"])
    if data.get("email"):
        conditions.append(Customer.email == data["email"])
    if not conditions:
        return None
    return (
        db.query(Customer)
        .filter(Customer.tenant_id == tenant_id, Customer.deleted_at.is_(None), or_(*conditions))
        .first()
    )


def import_customers(
    db: Session,
    tenant: Tenant,
    rows: list[dict],
    duplicate_action: str = "SKIP",
    dry_run: bool = False,
) -> dict:
    duplicate_action = duplicate_action.upper()
    if duplicate_action not in DUPLICATE_ACTIONS:
        raise HTTPException(
            status_code=400, detail=f"duplicate_action must be one of: {', '.join(DUPLICATE_ACTIONS)}"
        )

    result = {"total": len(rows), "created": 0, "updated": 0, "skipped": 0, "failed": 0, "errors": []}
    created_ids = []
    for number, row in enumerate(rows, start=2):
        try:
            data = clean_row(row)
        except ValueError as e:
            result["failed"] += 1
            result["errors"].append({"row": number, "error": str(e)})
            continue

        existing = _find_existing(db, tenant.id, data)
        if existing and duplicate_action == "SKIP":
            result["skipped"] += 1
            continue
        if existing and duplicate_action == "UPDATE":
            if not dry_run:
                for key, value in data.items():
                    if key == "tags":
                        existing.tags = sorted(set(existing.tags or []) | set(value))
                    elif value is not None:
                        setattr(existing, key, value)
            result["updated"] += 1
            continue

        # created rows are flushed, so only dry runs need to count them in
        usage = check_limit(db, tenant, "clients", increment=result["created"] + 1 if dry_run else 1)
        if not usage["allowed"]:
            result["failed"] += 1
            result["errors"].append({"row": number, "error": f"Customer limit reached ({usage['limit']})"})
            continue
        if not dry_run:
            customer = Customer(tenant_id=tenant.id, source="IMPORT", **data)
            db.add(customer)
            db.flush()
            created_ids.append(customer.id)
        result["created"] += 1

    if dry_run:
        db.rollback()
    else:
        db.commit()
    result["created_ids"] = created_ids
    logger.info(
        f"📥 Customer import for tenant {tenant.id}: created={result['created']} "
        f"updated={result['updated']} skipped={result['skipped']} failed={result['failed']}"
    )
    return result
