def run():
    """
    Run before every entry point:
        fastapi server
        dramatiq worker
        scripts
        ipython shell
    """
    from loguru import logger

    from src.common.logs import configure_logging

    configure_logging()
    configure_database()
    configure_queue()
    configure_models()

    logger.info('application setup complete ✅')


def teardown():
    teardown_database()


def configure_database():
    """
    Opens the process wide storage handle, sessions are made from it
    """
    from src.network.database import database

    database.open()


def teardown_database():
    from src.network.database import database

    database.close()


def configure_queue():
    """
    Sets up dramatiq broker with appropriate middleware
    """
    import dramatiq
    from dramatiq.brokers.redis import RedisBroker
    from dramatiq.middleware import CurrentMessage

    from src import settings
    from src.network.database.middleware import DramatiqSessionMiddleware
    from src.network.queue.broker import EagerBroker, StubBroker
    from src.network.queue.middleware import DramatiqTelemetryMiddleware, SentryMiddleware

    if settings.USE_MOCK_DRAMATIQ_BROKER:
        # Mocked broker
        broker = StubBroker()
        broker.emit_after('process_boot')
    elif settings.DRAMATIQ_EAGER_MODE:
        # Run tasks in main application thread
        # Useful for de-buggers
        broker = EagerBroker()
    else:
        # Live redis broker
        broker = RedisBroker(url=settings.REDIS_URL)

    broker.add_middleware(DramatiqTelemetryMiddleware())
    broker.add_middleware(DramatiqSessionMiddleware())
    broker.add_middleware(CurrentMessage())
    broker.add_middleware(SentryMiddleware())
    dramatiq.set_broker(broker)


def configure_models():
    """
    When using declarative we need to run this for our entry points
    to have context on our models / relationships example when
    traversing "user.id" as a foreign key
    """
    from src.common.model import import_model_modules

    import_model_modules()
