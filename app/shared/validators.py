"""Shared validation utilities"""

import re
import unicodedata
from typing import Optional

DEFAULT_COUNTRY_CODE = "55"

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


def normalize_phone(phone: Optional[str]) -> Optional[str]:
    """
    Validate and normalize a phone number to E.164 format.

    Numbers without a country code are treated as Brazilian: a 10 or 11
    digit national number (area code + subscriber) gets the +55 prefix.

    Raises:
        ValueError: If phone number is invalid
    """
    if not phone:
        return phone

    has_plus = phone.strip().startswith("+")
    digits = re.sub(r"\D", "", phone)

    if has_plus:
        if not 8 <= len(digits) <= 15:
            raise ValueError("Invalid international phone number")
        return f"+{digits}"

    if digits.startswith(DEFAULT_COUNTRY_CODE) and len(digits) in (12, 13):
        digits = digits[len(DEFAULT_COUNTRY_CODE) :]

    if len(digits) not in (10, 11):
        raise ValueError("Phone number must have 10 or 11 digits including area code")

    return f"+{DEFAULT_COUNTRY_CODE}{digits}"


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def normalize_cpf(cpf: Optional[str]) -> Optional[str]:
    """Strip formatting from a CPF, keeping only digits"""
    if not cpf:
        return cpf
    return re.sub(r"\D", "", cpf)


def validate_cpf(cpf: Optional[str]) -> Optional[str]:
    """
    Validate a Brazilian CPF using its two check digits.

    Returns:
        The CPF as 11 digits

    Raises:
        ValueError: If the CPF is malformed or the check digits do not match
    """
    if not cpf:
        return cpf

    digits = normalize_cpf(cpf)
    if len(digits) != 11 or digits == digits[0] * 11:
        raise ValueError("Invalid CPF")

    for position in (9, 10):
        total = sum(int(digits[i]) * (position + 1 - i) for i in range(position))
        check = (total * 10) % 11
        if check == 10:
            check = 0
        if check != int(digits[position]):
            raise ValueError("Invalid CPF")

    return digits


def slugify(value: str) -> str:
    """Lowercase ASCII slug with accents stripped, e.g. 'Corte Feminino' -> 'corte-feminino'"""
    normalized = unicodedata.normalize("NFKD", value)
    ascii_value = normalized.encode("ascii", "ignore").decode("ascii")
    ascii_value = re.sub(r"[^a-zA-Z0-9\s-]", "", ascii_value).strip().lower()
    return re.sub(r"[\s_-]+", "-", ascii_value).strip("-")


def validate_time(value: Optional[str]) -> Optional[str]:
    """Validate an "HH:MM" 24h time string"""
    if value is None:
        return value
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM format")
    return value


def time_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight"""
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def validate_password(password: str) -> str:
    if len(password) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if len(password) > 128:
        raise ValueError("Password must be at most 128 characters long")
    return password
