# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets; keep them in .env (local, gitignored).
"""

ENV_VARS = {
    # App / logging
    "TASKFLOW_APP_NAME": "App display name (default: taskflow).",
    "TASKFLOW_LOG_LEVEL": "Console logging level (default: INFO).",
    # Front-ends
    "TASKFLOW_CONSOLE_ENABLED": "Run the console REPL (true/false, default true).",
    "TASKFLOW_SCHEDULER_ENABLED": "Run the background sweep scheduler (true/false, default true).",
    # Paths (gitignored)
    "TASKFLOW_DATA_DIR": "Local data directory (default: .local/taskflow).",
    "TASKFLOW_DB_PATH": "SQLite database path (default: <data_dir>/taskflow.sqlite3).",
    # Sweeps
    "TASKFLOW_RECURRENCE_INTERVAL_SECONDS": "Recurrence pass cadence (default: 300).",
    "TASKFLOW_HIGH_PRIORITY_INTERVAL_SECONDS": "High-priority reminder pass cadence (default: 300).",
    "TASKFLOW_OVERDUE_HOUR": "Local hour of the daily overdue pass, 0-23 (default: 9).",
    "TASKFLOW_OVERDUE_TZ": "IANA zone for the overdue hour, e.g. Europe/Berlin (default: system local time).",
    "TASKFLOW_HIGH_PRIORITY_WINDOW_MINUTES": "High-priority reminder window (default: 60).",
    "TASKFLOW_DUE_SOON_WINDOW_HOURS": "Due-soon listing window (default: 24).",
    "TASKFLOW_NOTIFY_TIMEOUT_SECONDS": "Per-delivery timeout (default: 10).",
    # Email
    "TASKFLOW_SMTP_HOST": "SMTP host; empty => email reminders are only logged.",
    "TASKFLOW_SMTP_PORT": "SMTP port; 465 => implicit TLS, otherwise STARTTLS (default: 465).",
    "TASKFLOW_SMTP_USERNAME": "SMTP login.",
    "TASKFLOW_SMTP_PASSWORD": "SMTP password.",
    "TASKFLOW_SMTP_FROM": "Sender address (default: SMTP username).",
    # Push (Matrix)
    "TASKFLOW_MATRIX_ENABLED": "Deliver push reminders through Matrix (true/false).",
    "TASKFLOW_MATRIX_HOMESERVER": "Matrix homeserver URL.",
    "TASKFLOW_MATRIX_USER_ID": "Matrix user ID (bot).",
    "TASKFLOW_MATRIX_PASSWORD": "Password for first login (session stored locally).",
    "TASKFLOW_MATRIX_STORE_PATH": "Matrix session directory (default: <data_dir>/matrix_store).",
}
