"""
utils/backup.py — Timestamped copies of store files.

Copies a SQLite store file to the backup directory before destructive
operations (currently: the flat store before a migration removes its keys).
Format: garden_YYYYMMDD_HHMMSS_{reason}.db
"""

import os
import shutil
from datetime import datetime

import structlog

logger = structlog.get_logger(__name__)


def backup_store(path, backup_dir, reason='manual'):
    """
    Copy a store file to backup_dir with a timestamped filename.

    Args:
        path: Store file to copy.
        backup_dir: Destination directory (created if missing).
        reason: Short tag for the backup trigger (e.g., 'manual', 'pre_migration').

    Returns:
        The filename of the created backup, or None if there was nothing to
        copy or the copy failed.
    """
    if not os.path.exists(path):
        return None

    os.makedirs(backup_dir, exist_ok=True)
    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    safe_reason = reason.replace(' ', '_').replace('/', '_')[:30]
    filename = f'garden_{timestamp}_{safe_reason}.db'

    try:
        shutil.copy2(path, os.path.join(backup_dir, filename))
    except OSError as e:
        logger.error("backup_failed", path=path, error=str(e))
        return None
    logger.info("backup_created", filename=filename)
    return filename


def list_backups(backup_dir):
    """
    List backup files, newest first.

    Returns:
        List of dicts with keys: filename, timestamp, reason, size_bytes.
    """
    if not os.path.isdir(backup_dir):
        return []

    backups = []
    for f in os.listdir(backup_dir):
        if not (f.startswith('garden_') and f.endswith('.db')):
            continue
        # parts: ['garden', 'YYYYMMDD', 'HHMMSS', 'reason', ...]
        parts = f[:-len('.db')].split('_')
        timestamp = ''
        reason = ''
        if len(parts) >= 3:
            date_part, time_part = parts[1], parts[2]
            timestamp = (
                f'{date_part[:4]}-{date_part[4:6]}-{date_part[6:8]} '
                f'{time_part[:2]}:{time_part[2:4]}:{time_part[4:6]}'
            )
            reason = '_'.join(parts[3:])
        backups.append({
            'filename': f,
            'timestamp': timestamp,
            'reason': reason,
            'size_bytes': os.stat(os.path.join(backup_dir, f)).st_size,
        })

    backups.sort(key=lambda b: b['filename'], reverse=True)
    return backups
