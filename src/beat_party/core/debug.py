import os
import threading
from datetime import datetime
from typing import Optional

# Global debug state
_debug_mode = False
_log_file = None
_lock = threading.Lock()

def set_debug_mode(enabled: bool, log_file_path: Optional[str] = None):
    """Enable or disable debug mode and optionally mirror output to a log file"""
    global _debug_mode, _log_file

    _debug_mode = enabled
    close_log()

    if log_file_path and enabled:
        try:
            log_dir = os.path.dirname(log_file_path)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            _log_file = open(log_file_path, "w", encoding="utf-8")
            _log_file.write("=== BEAT PARTY DEBUG LOG ===\n")
            _log_file.write(f"Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
            _log_file.write("=" * 50 + "\n\n")
            _log_file.flush()
        except OSError as e:
            print(f"[DEBUG] could not open log file {log_file_path}: {e}")
            _log_file = None

def _write_log(level: str, message: str):
    timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]  # HH:MM:SS.mmm
    line = f"[{timestamp}] {level}: {message}"
    with _lock:
        print(line)
        if _log_file:
            try:
                _log_file.write(line + "\n")
                _log_file.flush()
            except (OSError, ValueError) as e:
                print(f"[DEBUG] could not write to log file: {e}")

def debug_info(message: str):
    """Verbose tracing, only when debug mode is on"""
    if not _debug_mode:
        return
    _write_log("INFO", message)

def debug_warning(message: str):
    """Degraded-but-continuing conditions (missing data, unknown dance...)"""
    _write_log("WARN", message)

def debug_error(message: str, exception: Optional[BaseException] = None):
    """Failures caught at a call site, with optional exception details"""
    text = message
    if exception is not None:
        text += f" - Exception: {type(exception).__name__}: {exception}"
    _write_log("ERROR", text)

def close_log():
    global _log_file

    with _lock:
        if _log_file:
            try:
                _log_file.write(f"\n=== LOG CLOSED: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')} ===\n")
                _log_file.close()
            except (OSError, ValueError) as e:
                print(f"[DEBUG] could not close log file: {e}")
            _log_file = None
