from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from podclip.models.base import Base, TimestampMixin

JsonType = JSON().with_variant(JSONB(), "postgresql")


class VideoJobRecord(Base, TimestampMixin):
    __tablename__ = "video_jobs"

    job_id: Mapped[str] = mapped_column(String(50), primary_key=True)

    # Status: queued, processing, completed, failed
    status: Mapped[str] = mapped_column(String(20), default="queued", index=True)
    stage: Mapped[str | None] = mapped_column(String(20), nullable=True)

    request_data: Mapped[dict[str, Any]] = mapped_column(JsonType, nullable=False)
    estimated_cost: Mapped[float] = mapped_column(Float, default=0.0)
    estimated_time: Mapped[int] = mapped_column(Integer, default=0)

    # Timing
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    failed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processing_time_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Output
    result_data: Mapped[dict[str, Any] | None] = mapped_column(JsonType, nullable=True)

    # Error handling
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retries: Mapped[int] = mapped_column(Integer, default=0)
    max_retries: Mapped[int] = mapped_column(Integer, default=2)

    def __repr__(self) -> str:
        return f"<VideoJobRecord {self.job_id} ({self.status})>"
