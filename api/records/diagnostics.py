"""
Per-request warning collector.

Non-fatal anomalies met while writing records are recorded here and returned
to privileged callers, instead of being printed or swallowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class Diagnostics:
    warnings: list[dict[str, Any]] = field(default_factory=list)

    def warn(self, code: str, message: str, **context: Any) -> None:
        entry: dict[str, Any] = {"code": code, "message": message}
        entry.update(context)
        self.warnings.append(entry)
        logger.info("record_warning code=%s %s", code, " ".join(f"{k}={v}" for k, v in context.items()))
