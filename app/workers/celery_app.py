"""
Celery Application Configuration

Queue Architecture:
- signals_queue: I/O-bound workers running signal fetchers (one site per task)
- scoring_queue: Light workers recomputing overall scores
- default:       General tasks

Worker scaling:
- signals_queue: 4-20 workers (mostly waiting on remote APIs)
- scoring_queue: 1-2 workers
"""

from celery import Celery
from celery.signals import after_setup_logger, worker_ready
from kombu import Exchange, Queue

from app.core.config import get_settings

settings = get_settings()

# ─────────────────────────────────────────────
# Celery App
# ─────────────────────────────────────────────

celery_app = Celery(
    "site_signal_audit",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=[
        "app.workers.signal_tasks",
    ],
)

# ─────────────────────────────────────────────
# Queue Definitions
# ─────────────────────────────────────────────

default_exchange = Exchange("default", type="direct")
signals_exchange = Exchange("signals", type="direct")
scoring_exchange = Exchange("scoring", type="direct")

celery_app.conf.task_queues = (
    Queue("default", default_exchange, routing_key="default"),
    Queue("signals_queue", signals_exchange, routing_key="signals"),
    Queue("scoring_queue", scoring_exchange, routing_key="scoring"),
)

celery_app.conf.task_default_queue = "default"
celery_app.conf.task_default_exchange = "default"
celery_app.conf.task_default_routing_key = "default"

# ─────────────────────────────────────────────
# Task Routing
# ─────────────────────────────────────────────

celery_app.conf.task_routes = {
    "app.workers.signal_tasks.run_signal_task": {"queue": "signals_queue"},
    "app.workers.signal_tasks.recalculate_*": {"queue": "scoring_queue"},
}

# ─────────────────────────────────────────────
# Configuration
# ─────────────────────────────────────────────

celery_app.conf.update(
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    # Reliability
    task_acks_late=True,                    # Ack after completion, not on receive
    task_reject_on_worker_lost=True,        # Re-queue if worker dies
    worker_prefetch_multiplier=1,           # Don't prefetch - process one at a time

    # Timeouts
    task_soft_time_limit=settings.CELERY_TASK_SOFT_TIME_LIMIT,
    task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

    # Results
    result_expires=86400,                  # Outcomes live on the audit row; keep results 1 day

    # Monitoring
    worker_send_task_events=True,
    task_send_sent_event=True,
)


# ─────────────────────────────────────────────
# Signals
# ─────────────────────────────────────────────

@worker_ready.connect
def on_worker_ready(sender, **kwargs):
    import structlog
    logger = structlog.get_logger("celery.worker")
    logger.info("Celery worker ready", hostname=sender.hostname)


@after_setup_logger.connect
def setup_celery_logging(logger, *args, **kwargs):
    from app.core.logging import configure_logging
    configure_logging()
