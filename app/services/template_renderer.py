"""
Notification template rendering using Jinja2.

Templates use {{ variable }} placeholders plus a few filters:
currency (R$ 1.234,56), date (dd/mm/YYYY), datetime (dd/mm/YYYY HH:MM) and capitalize.
"""

import logging
from datetime import date, datetime
from typing import Any, Iterable, Optional

from jinja2 import Environment, StrictUndefined, TemplateSyntaxError, UndefinedError, meta

logger = logging.getLogger(__name__)


class TemplateRenderError(Exception):
    """Raised when a notification template cannot be rendered."""

    pass


def format_currency(value: Any) -> str:
    amount = float(value or 0)
    formatted = f"{amount:,.2f}".replace(",", "X").replace(".", ",").replace("X", ".")
    return f"R$ {formatted}"


def format_date(value: Any) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    return str(value)


def format_datetime(value: Any) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        return value.strftime("%d/%m/%Y %H:%M")
    return format_date(value)


class TemplateRenderer:
    """Renders subject/body strings with strict undefined checking"""

    def __init__(self):
        self._env = Environment(
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self._env.filters["currency"] = format_currency
        self._env.filters["date"] = format_date
        self._env.filters["datetime"] = format_datetime
        self._env.filters["capitalize"] = lambda v: str(v).capitalize()

    def render_string(self, template_str: Optional[str], variables: dict[str, Any]) -> Optional[str]:
        if template_str is None:
            return None
        try:
            return self._env.from_string(template_str).render(**variables).strip()
        except UndefinedError as e:
            raise TemplateRenderError(f"Missing variable: {e}") from e
        except TemplateSyntaxError as e:
            raise TemplateRenderError(f"Invalid template syntax: {e}") from e

    def find_variables(self, template_str: Optional[str]) -> set[str]:
        """Names referenced by a template string"""
        if not template_str:
            return set()
        try:
            return meta.find_undeclared_variables(self._env.parse(template_str))
        except TemplateSyntaxError as e:
            raise TemplateRenderError(f"Invalid template syntax: {e}") from e

    def check_required(self, required: Iterable[str], variables: dict[str, Any]) -> None:
        missing = sorted(set(required or []) - set(variables))
        if missing:
            raise TemplateRenderError(f"Missing required variables: {', '.join(missing)}")


renderer = TemplateRenderer()
