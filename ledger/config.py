# ledger/config.py
from __future__ import annotations
import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as SchemaError

logger = logging.getLogger(__name__)

# --- Chemins de base ---
ROOT_DIR = Path(__file__).resolve().parents[1]
DATA_DIR = Path(os.environ.get("LEDGER_DATA_DIR") or ROOT_DIR / "data")
SETTINGS_FILENAME = "settings.json"

DEFAULT_TAX_RATE = Decimal("0.15")


# ---------- Utils JSON ----------
def load_json(path: os.PathLike | str):
    p = Path(path)
    if not p.exists():
        return None
    try:
        return json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("Unreadable JSON file %s, ignoring it", p)
        return None


def dump_json(path: os.PathLike | str, data) -> None:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(json.dumps(data, ensure_ascii=False, indent=2, default=str), encoding="utf-8")


# ---------- Settings ----------
class NumberingSettings(BaseModel):
    invoice_prefix: str = "INV"
    purchase_order_prefix: str = "PUR"
    # compteurs persistés : "<PREFIX>-<année>" -> dernier ordinal attribué
    counters: Dict[str, int] = Field(default_factory=dict)

    class Config:
        extra = "ignore"

    def prefix_for(self, kind: str) -> str:
        return self.purchase_order_prefix if kind == "purchase_order" else self.invoice_prefix


class LedgerSettings(BaseModel):
    tax_rate: Decimal = DEFAULT_TAX_RATE
    currency: str = "SAR"
    numbering: NumberingSettings = Field(default_factory=NumberingSettings)
    backup_enabled: bool = True
    backup_keep: int = 5

    class Config:
        extra = "ignore"


def settings_path(data_dir: Optional[os.PathLike | str] = None) -> Path:
    return Path(data_dir or DATA_DIR) / SETTINGS_FILENAME


def load_settings(data_dir: Optional[os.PathLike | str] = None) -> LedgerSettings:
    raw: Any = load_json(settings_path(data_dir)) or {}
    if not isinstance(raw, dict):
        return LedgerSettings()
    try:
        return LedgerSettings.model_validate(raw)
    except SchemaError as e:
        logger.warning("Invalid settings in %s (%s), falling back to defaults", settings_path(data_dir), e)
        return LedgerSettings()


def save_settings(settings: LedgerSettings, data_dir: Optional[os.PathLike | str] = None) -> None:
    dump_json(settings_path(data_dir), settings.model_dump(mode="json"))
