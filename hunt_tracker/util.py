import os
from datetime import datetime
from decimal import ROUND_DOWN, Decimal, InvalidOperation
from pathlib import Path
from typing import Optional


STATE_DIR_NAME = ".hunt-tracker"


def project_root_from_cwd() -> Path:
    return Path(os.getcwd())


def state_dir_from_env() -> Optional[Path]:
    p = os.environ.get("HUNT_TRACKER_STATE_DIR")
    return Path(p) if p else None


def ensure_state_dir(root: Path) -> Path:
    state = root / STATE_DIR_NAME
    state.mkdir(parents=True, exist_ok=True)
    return state


def timestamp_slug(now: Optional[datetime] = None) -> str:
    return (now or datetime.now()).strftime("%Y-%m-%d_%H-%M-%S")


def percentage(value: Decimal, total: Decimal) -> Decimal:
    """value/total as a percentage, 0 when the ratio is undefined."""
    try:
        if total == 0:
            return Decimal(0)
        return (value / total) * 100
    except InvalidOperation:
        return Decimal(0)


def truncate(value: Decimal, scale: int = 4) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-scale), rounding=ROUND_DOWN)
