import os

from apscheduler.schedulers.background import BackgroundScheduler

from markvault.services.realtime import prune_stale_feed


scheduler = BackgroundScheduler()


def prune_feed(app) -> tuple[int, int]:
    with app.app_context():
        events, subscriptions = prune_stale_feed(
            retention_hours=app.config["FEED_EVENT_RETENTION_HOURS"],
            idle_minutes=app.config["FEED_SUBSCRIPTION_IDLE_MINUTES"],
        )
        if events or subscriptions:
            app.logger.info(
                "Pruned %s change events and %s idle subscriptions",
                events,
                subscriptions,
            )
        return events, subscriptions


def start_scheduler(app):
    if not app.config.get("SCHEDULER_ENABLED", True):
        return
    if os.environ.get("WERKZEUG_RUN_MAIN") == "false":
        return

    interval_minutes = app.config["FEED_PRUNE_INTERVAL_MINUTES"]
    if not scheduler.get_jobs():
        scheduler.add_job(
            prune_feed,
            "interval",
            minutes=interval_minutes,
            kwargs={"app": app},
            id="feed_prune",
            replace_existing=True,
        )
        scheduler.start()
