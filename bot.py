"""RemindAI dispatch service - main process.

Wires the intent resolver, Supabase store, channel senders and the
APScheduler dispatch queue, restores pending reminders and keeps the
scheduler running. Channel webhooks call ``ReminderService.handle_message``
on the service built here.
"""

import asyncio

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from logger import logger
from domains.reminders import (
    DispatchQueue,
    DispatchWorker,
    RecurrenceEngine,
    ReminderService,
    SupabaseReminderStore,
    SupabaseUserDirectory,
    build_default_resolver,
    build_default_router,
    reload_reminders_on_startup,
    start_reminder_polling,
)


def build_service(scheduler: AsyncIOScheduler) -> tuple[ReminderService, DispatchQueue, SupabaseReminderStore]:
    """Construct every collaborator once and connect them.

    Args:
        scheduler: APScheduler instance the queue adds jobs to

    Returns:
        (service, queue, store)
    """
    store = SupabaseReminderStore()
    directory = SupabaseUserDirectory()
    queue = DispatchQueue(scheduler, directory)
    recurrence = RecurrenceEngine(store, queue, directory)
    worker = DispatchWorker(store, build_default_router(), queue, recurrence)
    queue.register_worker(worker.run)

    service = ReminderService(
        resolver=build_default_resolver(),
        store=store,
        directory=directory,
        queue=queue,
        recurrence=recurrence,
    )
    return service, queue, store


async def main():
    scheduler = AsyncIOScheduler(timezone="UTC")
    service, queue, store = build_service(scheduler)

    scheduler.start()
    logger.info("Scheduler started")

    reminder_count = await reload_reminders_on_startup(queue, store)
    logger.info(f"Loaded {reminder_count} pending reminders")
    start_reminder_polling(scheduler, queue, store)

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")


if __name__ == "__main__":
    logger.info("Starting RemindAI dispatch service...")
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Shutting down")
