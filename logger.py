import logging
import os
import glob
from datetime import datetime
from colorama import init, Fore, Style

# Initialize colorama for cross-platform colored output
init()

LOGS_DIR = "logs"

# One log file per process, shared by every module logger
_RUN_TIMESTAMP = datetime.now().strftime("%Y%m%d_%H%M%S")

class ColoredFormatter(logging.Formatter):
    """Custom formatter to add colors to log levels"""

    COLORS = {
        'DEBUG': Fore.CYAN,
        'INFO': Fore.GREEN,
        'WARNING': Fore.YELLOW,
        'ERROR': Fore.RED,
        'CRITICAL': Fore.MAGENTA
    }

    def format(self, record):
        # Color a copy so the file handler keeps the plain level name
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{Style.RESET_ALL}"

        return super().format(record)

class DelayedFileHandler(logging.FileHandler):
    """File handler that only creates its file when the first record is written"""

    def __init__(self, filename, mode='a', encoding='utf-8'):
        super().__init__(filename, mode, encoding, delay=True)

    def emit(self, record):
        if self.stream is None:
            os.makedirs(os.path.dirname(self.baseFilename), exist_ok=True)
            self.stream = self._open()
        super().emit(record)

def setup_logger(name="migration", level="INFO"):
    """Set up logger with both file and console output"""

    logger = logging.getLogger(name)
    logger.setLevel(logging.DEBUG)

    # Clear any existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    log_file = os.path.join(LOGS_DIR, f"migration_{_RUN_TIMESTAMP}.log")
    file_handler = DelayedFileHandler(log_file, encoding='utf-8')
    file_handler.setLevel(logging.DEBUG)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(getattr(logging, level.upper()))

    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(threadName)s - %(levelname)s - %(message)s'
    ))
    console_handler.setFormatter(ColoredFormatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    ))

    logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    return logger

def set_console_level(level):
    """Change the console verbosity of every logger set up by setup_logger"""
    numeric_level = getattr(logging, level.upper())
    for logger in logging.Logger.manager.loggerDict.values():
        if not isinstance(logger, logging.Logger):
            continue
        for handler in logger.handlers:
            if type(handler) is logging.StreamHandler:
                handler.setLevel(numeric_level)

def cleanup_old_logs(keep_recent=5, logs_dir=LOGS_DIR):
    """
    Clean up old log files, keeping only:
    - The most recent logs
    - All logs that contain ERROR or CRITICAL messages
    Migration reports are pruned to twice the number of kept logs.

    Returns the number of files removed.
    """
    if not os.path.exists(logs_dir):
        return 0

    log_files = glob.glob(os.path.join(logs_dir, "migration_*.log"))
    report_files = glob.glob(os.path.join(logs_dir, "migration_report_*.json"))

    deleted_count = 0

    log_files.sort(key=os.path.getmtime, reverse=True)
    recent_files = set(log_files[:keep_recent])
    files_with_errors = {f for f in log_files[keep_recent:] if has_errors_in_log(f)}
    files_to_keep = recent_files | files_with_errors

    for log_file in log_files:
        if log_file in files_to_keep:
            continue
        try:
            os.remove(log_file)
            deleted_count += 1
        except OSError:
            pass  # File still in use

    # Reports are small, keep more of them
    report_files.sort(key=os.path.getmtime, reverse=True)
    for report_file in report_files[keep_recent * 2:]:
        try:
            os.remove(report_file)
            deleted_count += 1
        except OSError:
            pass

    return deleted_count

def has_errors_in_log(log_file):
    """Check if a log file contains ERROR or CRITICAL messages"""
    try:
        with open(log_file, 'r', encoding='utf-8') as f:
            content = f.read()
            return 'ERROR' in content or 'CRITICAL' in content
    except OSError:
        # If we can't read the file, assume it has no errors
        return False
