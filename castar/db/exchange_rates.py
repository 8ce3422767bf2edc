"""
Exchange-rate cache repository.

Rates are fetched by an external currency service and cached here; one row
per currency pair, replaced on each refresh.
"""

from typing import Iterable, Optional

from castar.config import EXCHANGE_RATE_MAX_AGE_MS

from .base import BaseRepository, now_ms
from .models import ExchangeRate


class ExchangeRateRepository(BaseRepository[ExchangeRate]):
    """Repository for cached exchange rates."""

    table = "exchange_rates"
    model = ExchangeRate

    def find_by_base(self, base_currency: str) -> list[ExchangeRate]:
        return self._find_many(
            "SELECT * FROM exchange_rates WHERE base_currency = ?",
            (base_currency,),
        )

    def find_fresh_by_base(
        self,
        base_currency: str,
        max_age_ms: int = EXCHANGE_RATE_MAX_AGE_MS,
        now: Optional[int] = None,
    ) -> list[ExchangeRate]:
        """Rates fetched within the last ``max_age_ms``; empty when all are stale."""
        cutoff = (now if now is not None else now_ms()) - max_age_ms
        return self._find_many(
            """
            SELECT * FROM exchange_rates
            WHERE base_currency = ? AND fetched_at >= ?
            """,
            (base_currency, cutoff),
        )

    def get_rate(self, base_currency: str, target_currency: str) -> Optional[float]:
        if base_currency == target_currency:
            return 1.0
        rate = self.find_by_id(ExchangeRate.make_id(base_currency, target_currency))
        return rate.rate if rate else None

    def upsert_batch(self, rates: Iterable[ExchangeRate]) -> int:
        """Insert or refresh rates; returns how many were written."""
        written = 0
        with self.db.transaction() as conn:
            for rate in rates:
                conn.execute(
                    """
                    INSERT INTO exchange_rates (
                        id, base_currency, target_currency, rate, fetched_at
                    ) VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        rate = excluded.rate,
                        fetched_at = excluded.fetched_at
                    """,
                    (
                        rate.id,
                        rate.base_currency,
                        rate.target_currency,
                        rate.rate,
                        rate.fetched_at,
                    ),
                )
                written += 1
        return written

    def delete_all(self) -> int:
        cursor = self.db.execute("DELETE FROM exchange_rates")
        return cursor.rowcount
