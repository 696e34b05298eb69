import time
from typing import Any

import sentry_sdk
from dramatiq.errors import Retry
from dramatiq.middleware import Middleware
from loguru import logger
from sentry_sdk.integrations.logging import ignore_logger

from src import settings


class DramatiqTelemetryMiddleware(Middleware):
    def before_process_message(self, broker, message):
        logger.info('processing task', task_id=message.message_id, actor=message.actor_name)
        message.options['telemetry_start_time'] = time.time()

    def after_process_message(self, broker, message, *, result=None, exception=None):
        start_time = message.options.get('telemetry_start_time', time.time())
        duration = round(time.time() - start_time, 2)
        if exception is None:
            logger.info('completed task', task_id=message.message_id, actor=message.actor_name, seconds=duration)
        else:
            logger.bind(task_id=message.message_id, actor=message.actor_name, seconds=duration).opt(
                exception=exception
            ).error('task failed')


class SentryMiddleware(Middleware):
    """
    Dramatiq middleware that captures and sends worker
    exceptions to Sentry.
    """

    def __init__(self):
        if not settings.USE_MOCK_SENTRY_CLIENT and settings.SENTRY_DSN:
            # Ignore dramatiq logging since these are handled in middleware
            ignore_logger('dramatiq.worker.WorkerThread')
            sentry_sdk.init(
                dsn=settings.SENTRY_DSN,
                environment=settings.ENVIRONMENT,
                sample_rate=settings.SENTRY_DEFAULT_SAMPLE_RATE,
            )

    @property
    def actor_options(self):
        return {'sentry_ignore_exceptions'}

    def before_process_message(self, broker, message):
        if not sentry_sdk.get_client().is_active():
            return

        # Closed manually in after_process_message
        message._sentry_scope_manager = sentry_sdk.isolation_scope()
        scope = message._sentry_scope_manager.__enter__()
        scope.set_transaction_name(message.actor_name)
        scope.set_tag('worker_message_id', message.message_id)
        scope.set_context('worker', {'actor': message.actor_name, 'args': message.args, 'kwargs': message.kwargs})

    def after_process_message(self, broker, message, *, result=None, exception=None):
        scope_manager: Any = getattr(message, '_sentry_scope_manager', None)
        if scope_manager is None:
            return

        actor = broker.get_actor(message.actor_name)
        ignore_exceptions = actor.options.get('sentry_ignore_exceptions')
        try:
            if exception is not None and not isinstance(exception, Retry):
                if ignore_exceptions and isinstance(exception, ignore_exceptions):
                    logger.info('not sending ignored exception to sentry', task_id=message.message_id)
                else:
                    sentry_sdk.capture_exception(exception)
        finally:
            scope_manager.__exit__(None, None, None)
