"""
Sync App - Run Orchestration

Responsibilities:
- Parse the mode argument ('seed' or refresh)
- Load configuration and fail fast on missing secrets
- Run once, or hourly via APScheduler
- Exit non-zero when a run fails
"""
