"""
EduPortal Billing - Celery Configuration

Celery configuration for background reconciliation.
Uses Redis as the message broker and result backend.
"""

from celery import Celery
from celery.schedules import crontab

from app.config import settings


# Create Celery app
celery_app = Celery(
    'eduportal_billing',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['app.tasks.celery_tasks'],
)

# Celery configuration
celery_app.conf.update(
    # Serialization
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    
    # Timezone
    timezone='Asia/Kolkata',
    enable_utc=True,
    
    # Task execution settings
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_time_limit=300,  # 5 minutes
    task_soft_time_limit=240,
    
    # Worker settings
    worker_prefetch_multiplier=1,
    
    # Result backend settings
    result_expires=86400,  # 24 hours
    
    # Beat schedule for periodic tasks
    beat_schedule={
        # Expire subscriptions nobody has read since their end date
        'reconcile-expired-subscriptions': {
            'task': 'app.tasks.celery_tasks.reconcile_expired_subscriptions_task',
            'schedule': crontab(minute=5),  # Every hour
        },
        
        # Close checkout orders left unpaid past their expiry
        'expire-stale-orders': {
            'task': 'app.tasks.celery_tasks.expire_stale_orders_task',
            'schedule': crontab(minute='*/15'),
        },
    },
)
