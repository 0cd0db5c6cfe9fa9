"""Job cost model and the daily spend ledger.

Estimates and actuals share one formula. The estimate feeds it projected
values (frame count from fps, output size from a bytes-per-second
projection, processing time from the time estimate); the actual feeds it
measured ones. The two agree within ``COST_ESTIMATE_TOLERANCE`` when the
output size is within 1MB and the processing time within 30s of the
projection.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable

from podclip.jobs.models import CostBreakdown

COST_ESTIMATE_TOLERANCE = 0.05


@dataclass(frozen=True)
class CostRates:
    """Unit prices in USD."""

    download_per_minute: float = 0.002
    transcription_per_minute: float = 0.00025
    smart_features_per_minute: float = 0.00015
    per_frame: float = 0.0001
    encoding_per_minute: float = 0.003
    storage_per_byte: float = 0.00000001
    storage_minimum: float = 0.0005
    processing_per_ms: float = 0.000001
    processing_minimum: float = 0.001
    projected_bytes_per_second: int = 100_000

    @classmethod
    def from_settings(cls, settings) -> "CostRates":
        return cls(
            download_per_minute=settings.cost_download_per_minute,
            transcription_per_minute=settings.cost_transcription_per_minute,
            smart_features_per_minute=settings.cost_smart_features_per_minute,
            per_frame=settings.cost_per_frame,
            encoding_per_minute=settings.cost_encoding_per_minute,
            storage_per_byte=settings.cost_storage_per_byte,
            storage_minimum=settings.cost_storage_minimum,
            processing_per_ms=settings.cost_processing_per_ms,
            processing_minimum=settings.cost_processing_minimum,
            projected_bytes_per_second=settings.projected_bytes_per_second,
        )


def estimate_time_sec(duration_s: float) -> int:
    """Rough wall-clock estimate for a clip, capped at 90 seconds."""
    return round(min(45 + duration_s * 0.5, 90))


def compute_cost_breakdown(
    rates: CostRates,
    *,
    duration_s: float,
    frame_count: int,
    file_size_bytes: int,
    processing_time_ms: int,
    captions: bool,
    smart_features: bool = False,
) -> CostBreakdown:
    minutes = duration_s / 60

    transcription = 0.0
    if captions:
        per_minute = rates.transcription_per_minute
        if smart_features:
            per_minute += rates.smart_features_per_minute
        transcription = minutes * per_minute

    return CostBreakdown(
        download=round(minutes * rates.download_per_minute, 6),
        transcription=round(transcription, 6),
        frame_generation=round(frame_count * rates.per_frame, 6),
        encoding=round(minutes * rates.encoding_per_minute, 6),
        storage=round(max(rates.storage_minimum, file_size_bytes * rates.storage_per_byte), 6),
        processing=round(max(rates.processing_minimum, processing_time_ms * rates.processing_per_ms), 6),
    )


def estimate_job_cost(
    rates: CostRates,
    *,
    duration_s: float,
    fps: int,
    captions: bool,
    smart_features: bool = False,
) -> CostBreakdown:
    return compute_cost_breakdown(
        rates,
        duration_s=duration_s,
        frame_count=round(duration_s * fps),
        file_size_bytes=int(duration_s * rates.projected_bytes_per_second),
        processing_time_ms=estimate_time_sec(duration_s) * 1000,
        captions=captions,
        smart_features=smart_features,
    )


class DailySpendLedger:
    """Spend per UTC day. Only today's total is kept."""

    def __init__(self, cap: float, clock: Callable[[], datetime] | None = None):
        self.cap = cap
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._spend: dict[date, float] = {}

    def _today(self) -> date:
        return self._clock().astimezone(timezone.utc).date()

    def spent_today(self) -> float:
        return round(self._spend.get(self._today(), 0.0), 6)

    def remaining(self) -> float:
        return round(max(0.0, self.cap - self.spent_today()), 6)

    def would_exceed(self, amount: float, pending: float = 0.0) -> bool:
        """True if today's spend plus ``pending`` and ``amount`` is over the cap."""
        return self.spent_today() + pending + amount > self.cap + 1e-9

    def record(self, amount: float, when: datetime | None = None) -> None:
        day = (when or self._clock()).astimezone(timezone.utc).date()
        today = self._today()
        if day != today:
            return
        self._spend = {today: self._spend.get(today, 0.0) + amount}
