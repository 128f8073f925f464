"""Russian strings for ledger descriptions and resident notifications.

The catalog lives in ``static/translations.json`` as sections (``ledger``,
``notifications``) of named ``str.format`` templates:

    from snt_billing.services.localizer import t

    t("ledger.accrual", title="Взнос на дорогу")  # 'Начисление: Взнос на дорогу'
"""

import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

CATALOG_PATH = Path(__file__).resolve().parent.parent / "static" / "translations.json"


@lru_cache(maxsize=1)
def load_catalog() -> dict[str, dict[str, str]]:
    with open(CATALOG_PATH, encoding="utf-8") as f:
        return json.load(f)


def t(key: str, **kwargs: Any) -> str:
    """Render the template stored under ``section.name``.

    A missing key or placeholder is logged and never fails the caller's
    transaction: an unknown key renders as the key, a template with a missing
    placeholder renders unformatted.
    """
    section, _, name = key.partition(".")
    template = load_catalog().get(section, {}).get(name)
    if not isinstance(template, str):
        logger.warning(f"Translation key not found: {key}")
        return key

    try:
        return template.format(**kwargs)
    except (KeyError, IndexError) as e:
        logger.warning(f"Missing placeholder {e} for key: {key}")
        return template


__all__ = ["load_catalog", "t"]
