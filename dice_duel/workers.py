import logging

logger = logging.getLogger(__name__)


def _notification_queue_consumer(socketio_instance, queue_instance):
    """
    Background consumer for the notification queue.
    Takes messages off the queue and emits them to clients through SocketIO.
    """
    logger.info("[QueueConsumer] Emit consumer started.")
    while True:
        try:
            msg = queue_instance.get()
            if msg is None:
                logger.info("[QueueConsumer] Got None, shutting down.")
                break

            event = msg.get('event')
            payload = msg.get('payload', {})
            room = msg.get('room')

            if not event or not room:
                logger.warning(f"[QueueConsumer] Skipping malformed message: {msg}")
                continue

            socketio_instance.emit(event, payload, room=room)

        except Exception as e:
            logger.error(f"[QueueConsumer] Consumer error: {e}", exc_info=True)
            socketio_instance.sleep(1)


def _round_clock_ticker(app, socketio_instance, queue_instance, interval):
    """
    Ticks every active match once per interval and queues what the ticks produced
    (expiry reveals, results hold countdowns, state updates).
    """
    logger.info(f"[ClockTicker] Round clock ticker started ({interval}s).")
    while True:
        socketio_instance.sleep(interval)
        try:
            with app.app_context():
                for msg in app.game_service.tick_all():
                    queue_instance.put(msg)
        except Exception as e:
            logger.error(f"[ClockTicker] Tick error: {e}", exc_info=True)


def start_notification_consumer(socketio_instance, queue_instance):
    socketio_instance.start_background_task(
        target=_notification_queue_consumer,
        socketio_instance=socketio_instance,
        queue_instance=queue_instance
    )


def start_round_clock(app, socketio_instance, queue_instance):
    socketio_instance.start_background_task(
        target=_round_clock_ticker,
        app=app,
        socketio_instance=socketio_instance,
        queue_instance=queue_instance,
        interval=app.config['TICK_INTERVAL_SEC']
    )
