"""Published-sheet settings, persisted as a small JSON file."""
import json
import logging
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

logger = logging.getLogger("nursing-sheets")

DEFAULT_SETTINGS_FILE = "settings.json"

# JSON key ↔ attribute
_CAMEL = {
    "main_url": "mainUrl",
    "summary_sheet": "summarySheet",
    "ipd_sheet": "ipdSheet",
    "opd_sheet": "opdSheet",
}


@dataclass
class SheetSettings:
    main_url: str = ""
    summary_sheet: str = "Daily_Summary"
    ipd_sheet: str = "IPD_Workforce"
    opd_sheet: str = "OPD_Workforce"

    def to_dict(self) -> Dict[str, Any]:
        return {_CAMEL[k]: v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "SheetSettings":
        data = data or {}
        kwargs = {}
        for f in fields(cls):
            value = data.get(_CAMEL[f.name], data.get(f.name))
            if value is not None:
                kwargs[f.name] = str(value)
        return cls(**kwargs)


def settings_path() -> Path:
    return Path(os.getenv("SHEET_SETTINGS_FILE", DEFAULT_SETTINGS_FILE))


def load_settings(path: Optional[Union[str, Path]] = None) -> SheetSettings:
    """Stored settings, or defaults when the file is missing or unreadable."""
    path = Path(path) if path else settings_path()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return SheetSettings()
    except (OSError, ValueError) as e:
        logger.warning(f"Could not read sheet settings from {path}: {e}")
        return SheetSettings()
    return SheetSettings.from_dict(data)


def save_settings(settings: SheetSettings, path: Optional[Union[str, Path]] = None) -> SheetSettings:
    path = Path(path) if path else settings_path()
    path.write_text(json.dumps(settings.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
    logger.info(f"Sheet settings saved to {path}")
    return settings
