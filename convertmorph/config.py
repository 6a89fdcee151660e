"""Central configuration for ConvertMorph.

Values come from environment variables so the same code runs unchanged on a
laptop, in CI and behind the web app. The `settings` instance is created once
at import time and shared by every module.
"""

import os


class Settings:
    """Runtime settings read from the environment."""

    # ---------- Worker pool ----------

    # Upper bound on background jobs running at the same time.
    MAX_WORKERS: int = int(os.getenv("CONVERTMORPH_MAX_WORKERS", "4"))

    # Hard wall-clock limit per job, in seconds (5 minutes).
    JOB_TIMEOUT: float = float(os.getenv("CONVERTMORPH_JOB_TIMEOUT", "300"))

    # multiprocessing start method for worker processes.
    START_METHOD: str = os.getenv("CONVERTMORPH_START_METHOD", "spawn")

    # ---------- Processing ----------

    # Resolution used when rendering pages to images.
    RENDER_DPI: int = int(os.getenv("CONVERTMORPH_RENDER_DPI", "150"))

    # Largest upload the web app accepts, in MB.
    MAX_UPLOAD_MB: int = int(os.getenv("CONVERTMORPH_MAX_UPLOAD_MB", "500"))

    # ---------- Logging ----------

    LOG_LEVEL: str = os.getenv("CONVERTMORPH_LOG_LEVEL", "WARNING")


settings = Settings()
