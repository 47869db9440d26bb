from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "Credit Workflow Core"
    debug: bool = False
    log_level: str = "INFO"

    database_url: str = "sqlite+aiosqlite:///./credit_workflow.db"

    # Role allowed to perform any workflow transition
    system_admin_role: str = "SystemAdministrator"

    committee_default_deadline_hours: int = 72

    # SLA escalation: one level per interval elapsed past the due time
    sla_escalation_interval_hours: int = 24
    max_escalation_level: int = 3

    sla_sweep_interval_seconds: int = 300
    committee_sweep_interval_seconds: int = 600
    notification_dispatch_interval_seconds: int = 60
    notification_max_attempts: int = 5
    notification_batch_size: int = 50

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def is_sqlite_url(database_url: str) -> bool:
    return "sqlite" in database_url.split(":")[0].lower()


settings = Settings()
