"""Default settings for coview analyses."""

from __future__ import annotations

from pydantic import BaseModel, Field

DEFAULT_MAX_PAIRS = 2_000_000
DEFAULT_SEED = 42
DEFAULT_BUCKET_MINUTES = 30
DEFAULT_LAYOUT_ITERATIONS = 50
DEFAULT_WORKERS = 4

# Headers of the raw streaming export, mapped to the row field names
EXPORT_COLUMNS = {
    "Profile Name": "profile_name",
    "Title": "title",
    "Start Time": "start_time",
    "Duration": "duration",
    "Supplemental Video Type": "supplemental_video_type",
}


class AnalysisSettings(BaseModel):
    """Tunable knobs shared by the command line and library callers."""

    max_pairs: int = Field(default=DEFAULT_MAX_PAIRS, gt=0)
    seed: int = DEFAULT_SEED
    bucket_minutes: int = Field(default=DEFAULT_BUCKET_MINUTES, gt=0, le=1440)
    layout_iterations: int = Field(default=DEFAULT_LAYOUT_ITERATIONS, gt=0)
    workers: int = Field(default=DEFAULT_WORKERS, gt=0)
