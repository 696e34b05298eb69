"""
Entry point for `dramatiq src.network.queue.worker`
"""
from src import settings, setup

# Setups up application and broker, actors can only be declared after
setup.run()

from importlib import import_module

import dramatiq
from loguru import logger


def _import_task_modules():
    task_modules = []
    for app in settings.BOUNDARIES:
        try:
            module = import_module(f'{settings.BASE_MODULE}.{app}.tasks')
        except ModuleNotFoundError as exc:
            # Boundaries without a tasks.py are fine, broken imports inside one are not
            if exc.name != f'{settings.BASE_MODULE}.{app}.tasks':
                raise exc

            logger.debug(f'no tasks registered for {app}')
        else:
            task_modules.append(module)

    return task_modules


_import_task_modules()

# We are only going to use this global broker.
# If your task doesnt show up here... it is not in a boundary listed in settings
registered_tasks = {f'{task.fn.__module__}.{name}': task for name, task in dramatiq.get_broker().actors.items()}

logger.info('registered tasks:\n' + str(list(registered_tasks.keys())))
