"""Cumulative token usage, persisted across restarts."""

import threading
from pathlib import Path

from pydantic import BaseModel, ValidationError

from saiman.models.llm import TokenUsage
from saiman.utils.logging import get_logger

logger = get_logger(__name__)


class UsageTotals(BaseModel):
    total_input_tokens: int = 0
    total_output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens


def format_count(count: int) -> str:
    """Compact display form: ``1.2M``, ``45.0K``, ``999``."""
    if count >= 1_000_000:
        return f"{count / 1_000_000:.1f}M"
    if count >= 1_000:
        return f"{count / 1_000:.1f}K"
    return str(count)


class TokenTracker:
    """Running input/output token totals for every model call the process makes.

    Totals are written to ``path`` after each update when a path is given.
    """

    def __init__(self, path: Path | None = None):
        self.path = path
        self._lock = threading.Lock()
        self._totals = self._load()

    def _load(self) -> UsageTotals:
        if self.path is None or not self.path.exists():
            return UsageTotals()
        try:
            return UsageTotals.model_validate_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning(f"Ignoring unreadable usage file {self.path}: {e}")
            return UsageTotals()

    def _save(self) -> None:
        if self.path is None:
            return
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(self._totals.model_dump_json(), encoding="utf-8")
        except OSError as e:
            logger.error(f"Failed to persist token usage to {self.path}: {e}")

    def add(self, usage: TokenUsage | None) -> None:
        if usage is None:
            return
        self.add_counts(usage.input_tokens, usage.output_tokens)

    def add_counts(self, input_tokens: int, output_tokens: int) -> None:
        with self._lock:
            self._totals.total_input_tokens += input_tokens
            self._totals.total_output_tokens += output_tokens
            self._save()

    @property
    def totals(self) -> UsageTotals:
        with self._lock:
            return self._totals.model_copy()

    @property
    def total_input_tokens(self) -> int:
        return self.totals.total_input_tokens

    @property
    def total_output_tokens(self) -> int:
        return self.totals.total_output_tokens

    def summary(self) -> str:
        totals = self.totals
        return (
            f"{format_count(totals.total_input_tokens)} in / "
            f"{format_count(totals.total_output_tokens)} out"
        )
