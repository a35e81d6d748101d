"""
Process Management

PID-file locking, stop/pause/resume and background start for the daemon.
Only one daemon may run per agent identity; an flock on the PID file is
the lock, released by the kernel if the daemon dies.
"""

import fcntl
import logging
import os
import signal
import subprocess
import sys
import time
from typing import Any, Dict, Iterator, List, Optional

from config import config

logger = logging.getLogger(__name__)

SNAKE_SCRIPT = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'snake.py')

LOCK_ATTEMPTS = 3

# pid_file -> descriptor holding the flock, for locks taken by this process
_held_locks: Dict[str, int] = {}


class DaemonAlreadyRunning(Exception):
    """Raised by acquire_lock when another daemon holds the PID file"""

    def __init__(self, pid: int):
        super().__init__(f"Daemon already running (PID: {pid})")
        self.pid = pid


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    return True


def read_pid(pid_file: Optional[str] = None) -> Optional[int]:
    pid_file = pid_file or config.PID_FILE
    try:
        with open(pid_file, 'r', encoding='utf-8') as f:
            return int(f.read().strip())
    except (OSError, ValueError):
        return None


def _same_file(fd: int, path: str) -> bool:
    """The open descriptor still refers to the file at path"""
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return False
    fst = os.fstat(fd)
    return (st.st_dev, st.st_ino) == (fst.st_dev, fst.st_ino)


def is_daemon_running(pid_file: Optional[str] = None) -> Optional[int]:
    """
    PID of the running daemon, or None.

    The daemon holds an exclusive flock on the PID file for its lifetime.
    An unlocked PID file is a leftover and is removed.
    """
    pid_file = pid_file or config.PID_FILE
    if pid_file in _held_locks:
        return os.getpid()

    try:
        fd = os.open(pid_file, os.O_RDWR)
    except FileNotFoundError:
        return None

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            return read_pid(pid_file)

        # Unlink only while holding the lock so no new daemon can own this file
        if _same_file(fd, pid_file):
            logger.debug(f"Removing stale PID file {pid_file}")
            os.unlink(pid_file)
    finally:
        os.close(fd)
    return None


def acquire_lock(pid_file: Optional[str] = None):
    """
    Claim the PID file for this process.

    The lock is an flock held until release_lock() or process exit, so two
    daemons started together cannot both get it.
    """
    pid_file = pid_file or config.PID_FILE
    if pid_file in _held_locks:
        return

    os.makedirs(os.path.dirname(pid_file), exist_ok=True)
    for _ in range(LOCK_ATTEMPTS):
        fd = os.open(pid_file, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            raise DaemonAlreadyRunning(read_pid(pid_file) or 0)

        if _same_file(fd, pid_file):
            break
        # Locked a file that was unlinked under us; open the new one
        os.close(fd)
    else:
        raise DaemonAlreadyRunning(read_pid(pid_file) or 0)

    os.ftruncate(fd, 0)
    os.write(fd, str(os.getpid()).encode())
    _held_locks[pid_file] = fd
    logger.debug(f"Acquired lock {pid_file} (PID {os.getpid()})")


def release_lock(pid_file: Optional[str] = None):
    pid_file = pid_file or config.PID_FILE
    fd = _held_locks.pop(pid_file, None)
    if fd is None:
        return
    try:
        if _same_file(fd, pid_file):
            os.unlink(pid_file)
    finally:
        os.close(fd)


def stop_daemon(pid_file: Optional[str] = None, timeout: float = 5.0) -> Dict[str, Any]:
    """SIGTERM the daemon and wait for it to go away"""
    pid = is_daemon_running(pid_file)
    if not pid:
        return {'success': False, 'message': 'Daemon is not running'}

    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as e:
        return {'success': False, 'message': f'Failed to stop: {e}'}

    deadline = time.time() + timeout
    while time.time() < deadline:
        if not _pid_alive(pid):
            break
        time.sleep(0.5)
    else:
        return {'success': False, 'message': f'Daemon (PID: {pid}) did not exit within {timeout:.0f}s'}

    # The daemon removes its own PID file; clean up if it died without doing so
    is_daemon_running(pid_file)
    return {'success': True, 'message': f'Stopped daemon (PID: {pid})'}


def is_paused(pause_file: Optional[str] = None) -> bool:
    return os.path.exists(pause_file or config.PAUSE_FILE)


def pause_daemon(pause_file: Optional[str] = None) -> Dict[str, Any]:
    """Voting stops at the next tick; the daemon keeps polling"""
    pause_file = pause_file or config.PAUSE_FILE
    os.makedirs(os.path.dirname(pause_file), exist_ok=True)
    with open(pause_file, 'w', encoding='utf-8') as f:
        f.write(str(int(time.time())))
    return {'success': True, 'message': 'Daemon paused'}


def resume_daemon(pause_file: Optional[str] = None) -> Dict[str, Any]:
    pause_file = pause_file or config.PAUSE_FILE
    try:
        os.unlink(pause_file)
    except FileNotFoundError:
        pass
    return {'success': True, 'message': 'Daemon resumed'}


def get_daemon_status(settings: Dict[str, Any], agent_store) -> Dict[str, Any]:
    """Everything `snake status` and the status app show"""
    agent = agent_store.load()
    pid = is_daemon_running()
    return {
        'running': pid is not None,
        'pid': pid,
        'paused': is_paused(),
        'phase': agent.phase if pid else 'stopped',
        'last_error': agent.last_error,
        'current_team': agent.current_team,
        'games_played': agent.games_played,
        'wins': agent.wins,
        'votes_placed': agent.votes_placed,
        'started_at': agent.started_at,
        'strategy': settings.get('strategy'),
        'server': settings.get('server'),
        'telegram_chat_id': settings.get('telegram_chat_id'),
    }


def start_daemon_background(extra_args: Optional[List[str]] = None) -> Dict[str, Any]:
    """Spawn a detached `snake.py daemon`"""
    pid = is_daemon_running()
    if pid:
        return {'success': False, 'message': f'Already running (PID: {pid})', 'pid': pid}

    child = subprocess.Popen(
        [sys.executable, SNAKE_SCRIPT, 'daemon'] + list(extra_args or []),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        start_new_session=True,
    )
    logger.info(f"🚀 Started daemon in background (PID {child.pid})")
    return {'success': True, 'message': f'Started daemon (PID: {child.pid})', 'pid': child.pid}


def read_log_tail(lines: int = 50, log_file: Optional[str] = None) -> List[str]:
    log_file = log_file or config.LOG_FILE
    if not os.path.exists(log_file):
        return []
    with open(log_file, 'r', encoding='utf-8', errors='replace') as f:
        content = f.read().splitlines()
    return content[-lines:] if lines > 0 else []


def follow_log(log_file: Optional[str] = None, poll: float = 0.5) -> Iterator[str]:
    """Yield lines appended to the log file until interrupted"""
    log_file = log_file or config.LOG_FILE
    with open(log_file, 'r', encoding='utf-8', errors='replace') as f:
        f.seek(0, os.SEEK_END)
        while True:
            line = f.readline()
            if line:
                yield line.rstrip('\n')
            else:
                time.sleep(poll)


def tail_logs(lines: int = 50, follow: bool = False, log_file: Optional[str] = None):
    """Print the last lines of the daemon log, optionally following it"""
    log_file = log_file or config.LOG_FILE
    if not os.path.exists(log_file):
        print("No log file yet.")
        return

    for line in read_log_tail(lines, log_file):
        print(line)

    if follow:
        try:
            for line in follow_log(log_file):
                print(line, flush=True)
        except KeyboardInterrupt:
            pass
