import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
import json
import time
from decimal import Decimal, ROUND_HALF_UP, ROUND_CEILING
from typing import Any, Dict, Optional

from payledger.core.config import settings

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

def mkdir_safe(path: str):
    Path(path).mkdir(parents=True, exist_ok=True)

def to_money(value: Any) -> Decimal:
    """Coerce a number to a 2dp Decimal, rounding half up."""
    if value is None:
        return ZERO
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)

def ceil_whole(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_CEILING).quantize(CENT)

def to_minor(value: Any) -> int:
    return int(to_money(value) * 100)

def from_minor(value: Optional[int]) -> Optional[Decimal]:
    if value is None:
        return None
    return (Decimal(value) / 100).quantize(CENT)

def setup_logging(tenant_id: str = "system", *, log_level: str = None):
    logger_name = f"{settings.APP_NAME}.{tenant_id}"
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger
    level = log_level or settings.LOG_LEVEL
    logger.setLevel(getattr(logging, level))
    audit_dir = settings.AUDIT_LOG_PATH
    mkdir_safe(audit_dir)
    logfile = Path(audit_dir) / f"{tenant_id}.log"
    handler = RotatingFileHandler(str(logfile), maxBytes=10_000_000, backupCount=5)
    formatter = logging.Formatter('%(asctime)s %(levelname)s %(name)s %(message)s')
    handler.setFormatter(formatter)
    logger.addHandler(handler)
    if os.getenv("DEV", "").lower() in ("1","true","yes"):
        ch = logging.StreamHandler()
        ch.setFormatter(formatter)
        logger.addHandler(ch)
    logger.propagate = False
    return logger

def audit_log(tenant_id: str, actor: str, action: str, obj_type: str, obj_id: str, diff: Dict = None):
    audit_dir = settings.AUDIT_LOG_PATH
    mkdir_safe(audit_dir)
    path = Path(audit_dir) / f"{tenant_id}_audit.jsonl"
    entry = {
        "ts": int(time.time()),
        "actor": actor,
        "action": action,
        "object_type": obj_type,
        "object_id": obj_id,
        "diff": diff or {}
    }
    with open(path, "a", encoding="utf-8") as f:
        f.write(json.dumps(entry, default=str) + "\n")
    return True

def read_audit_log(tenant_id: str):
    path = Path(settings.AUDIT_LOG_PATH) / f"{tenant_id}_audit.jsonl"
    if not path.exists():
        return []
    with open(path, "r", encoding="utf-8") as f:
        return [json.loads(line) for line in f if line.strip()]
