# dice_duel/services/logging_service.py

import json
import logging
import datetime
import threading
from flask import current_app, has_app_context

logger = logging.getLogger(__name__)

file_lock = threading.RLock()


def _append_line(path, line):
    with file_lock:
        try:
            with open(path, 'a', encoding='utf-8') as f:
                f.write(line)
        except OSError as e:
            logger.error(f"Failed to write to log file {path}: {e}")


def log_match_stats(stats_data):
    """Appends one JSON line per finished match (path from app.config)."""
    stats_data['timestamp'] = datetime.datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    log_entry = json.dumps(stats_data, ensure_ascii=False) + '\n'

    if not has_app_context():
        logger.info(f"[match-stats] {log_entry.strip()}")
        return

    _append_line(current_app.config['STATS_LOG_FILE'], log_entry)


def log_event_to_file(log_entry):
    """Writes a general event line to the event log (path from app.config)."""
    if not has_app_context():
        logger.info(log_entry.strip())
        return

    _append_line(current_app.config['LOG_FILE'], log_entry)
