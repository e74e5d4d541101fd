"""Per-evaluation context passed through the detection pipeline.

Carries a correlation id and a logger that tags every line with it, so
concurrent evaluations for different assets and sessions can be told
apart in the log.
"""

import logging
import uuid
from dataclasses import dataclass, field


class _ContextAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[{self.extra['correlation_id']} {self.extra['scope']}] {msg}", kwargs


@dataclass(frozen=True)
class EvaluationContext:
    """Correlation id plus a scoped logger for one evaluation tick."""

    asset: str = ""
    session: str = ""
    correlation_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    logger_name: str = "tradeguard"

    @property
    def logger(self) -> logging.LoggerAdapter:
        scope = f"{self.asset}/{self.session}" if self.session else self.asset or "-"
        return _ContextAdapter(
            logging.getLogger(self.logger_name),
            {"correlation_id": self.correlation_id, "scope": scope},
        )

    @classmethod
    def new(cls, asset: str = "", session: str = "") -> "EvaluationContext":
        """Create a context with a fresh correlation id."""
        return cls(asset=asset, session=session)
