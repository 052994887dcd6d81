#!/usr/bin/env python3
"""
Celery worker for the payments service (payment confirmation emails).
"""

from dotenv import load_dotenv

load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app
    from core.config import settings
    from core.logging import configure_logging

    configure_logging(settings.LOG_LEVEL)
    celery_app.start([
        "worker",
        f"--loglevel={settings.LOG_LEVEL.lower()}",
        "--concurrency=2",
        "--without-gossip",
        "--without-mingle",
    ])
