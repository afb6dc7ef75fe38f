# hemolink/background/tasks.py
from typing import Any, Callable

from fastapi import BackgroundTasks

from hemolink.notifications.notifier import NotificationOutbox, Notifier


def enqueue_task(
    background_tasks: BackgroundTasks,
    func: Callable[..., Any],
    *args: Any,
    **kwargs: Any,
) -> None:
    """
    Helper to add a background task in a consistent way.

    Tasks run after the response has been sent.
    """
    background_tasks.add_task(func, *args, **kwargs)


def enqueue_notifications(
    background_tasks: BackgroundTasks,
    outbox: NotificationOutbox,
    notifier: Notifier,
) -> None:
    """Deliver what a committed request queued, off the request path."""
    if outbox.pending:
        enqueue_task(background_tasks, outbox.dispatch, notifier)
