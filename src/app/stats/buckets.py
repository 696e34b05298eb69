from datetime import datetime
from typing import Any, Iterable, Iterator

from src.app.stats.constants import Period
from src.app.stats.domains import BucketKey
from src.app.stats.periods import bounds_for, iter_bounds_between


class AffectedBucketTracker:
    """
    Collects the distinct aggregate buckets touched by a write. Every row
    lands in exactly one bucket per period kind, duplicates collapse.
    """

    def __init__(self) -> None:
        self._keys: set[BucketKey] = set()

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[BucketKey]:
        return iter(self.keys())

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def keys(self) -> list[BucketKey]:
        """
        Stable order so recomputes run the same way every time, all time last
        """
        order = {period: index for index, period in enumerate(Period.list_all())}
        return sorted(
            self._keys,
            key=lambda k: (order[k.period], k.application, k.period_start or datetime.min),
        )

    def add(self, period: Period | str, application: str, instant: datetime, timezone: str | None = None) -> BucketKey:
        period = Period(period)
        key = BucketKey(
            period=period.value,
            application=str(application),
            period_start=bounds_for(period, instant, timezone).start,
        )
        self._keys.add(key)
        return key

    def add_rows(self, rows: Iterable[Any], timezone: str | None = None) -> 'AffectedBucketTracker':
        """
        Rows are anything carrying an application and a date, uploads and
        the placements of overwritten rows alike
        """
        for row in rows:
            for period in Period:
                self.add(period, row.application, row.date, timezone)
        return self

    def add_range(
        self,
        start: datetime,
        end: datetime,
        applications: Iterable[str],
        timezone: str | None = None,
    ) -> 'AffectedBucketTracker':
        """
        Every bucket overlapping the inclusive range [start, end] for each application
        """
        applications = [str(application) for application in applications]
        for period in Period:
            for bounds in iter_bounds_between(period, start, end, timezone):
                for application in applications:
                    self._keys.add(
                        BucketKey(period=period.value, application=application, period_start=bounds.start)
                    )
        return self

    def add_keys(self, keys: Iterable[BucketKey]) -> 'AffectedBucketTracker':
        """
        Stored keys as they are, daily buckets written under an earlier
        timezone keep their own start
        """
        self._keys.update(keys)
        return self
