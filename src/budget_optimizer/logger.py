import logging
import sys
import json
import os
import gzip
import shutil
from datetime import datetime
from logging.handlers import TimedRotatingFileHandler
from optimizer_config import LoggingConfig
from .context import get_current_context

# Attributes every LogRecord carries; anything else arrived through `extra`
_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname', 'filename', 'module',
    'lineno', 'funcName', 'created', 'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'taskName', 'getMessage', 'exc_info', 'exc_text',
    'stack_info', 'message', 'request_id', 'strategy', 'phase',
}

class CompressingTimedRotatingFileHandler(TimedRotatingFileHandler):
    """TimedRotatingFileHandler that compresses rotated files"""

    def doRollover(self):
        super().doRollover()

        # The rotated file carries a timestamp suffix next to the base file
        dir_name, base_name = os.path.split(self.baseFilename)

        try:
            for file_name in os.listdir(dir_name):
                if file_name.startswith(base_name) and not file_name.endswith('.gz') and file_name != base_name:
                    full_path = os.path.join(dir_name, file_name)
                    with open(full_path, 'rb') as f_in:
                        with gzip.open(f'{full_path}.gz', 'wb') as f_out:
                            shutil.copyfileobj(f_in, f_out)
                    os.remove(full_path)
        except OSError as e:
            # Compression failures must not break the rollover itself
            print(f"Error during log compression: {e}", file=sys.stderr)

class StructuredFormatter(logging.Formatter):
    """Formatter for structured logging with optimization context support"""

    def __init__(self, output_format: str = 'text'):
        super().__init__()
        self.output_format = output_format

    def format(self, record):
        log_data = {
            'timestamp': datetime.now().strftime('%Y-%m-%d %H:%M:%S'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage()
        }

        for key in ('request_id', 'strategy', 'phase'):
            value = getattr(record, key, None)
            if value is not None:
                log_data[key] = value

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value.isoformat() if isinstance(value, datetime) else value

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        if self.output_format == 'json':
            return json.dumps(log_data, default=str)

        base_msg = f"{log_data['timestamp']} - {log_data['logger']} - {log_data['level']} - {log_data['message']}"
        if 'request_id' in log_data:
            base_msg += f" [request_id={log_data['request_id']}]"
        if 'phase' in log_data:
            base_msg += f" [phase={log_data['phase']}]"
        if 'exception' in log_data:
            base_msg += f"\n{log_data['exception']}"
        return base_msg

def configure_root_logger(config: LoggingConfig, stream=None):
    """Configure the root logger to use structured formatting for all logs (stdout unless `stream` is given)"""
    root_logger = logging.getLogger()

    # Clear existing handlers to avoid duplicates
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, config.level.upper()))

    formatter = StructuredFormatter(config.format)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if config.file_path:
        log_dir = os.path.dirname(config.file_path)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

        file_handler = CompressingTimedRotatingFileHandler(
            filename=config.file_path,
            when='midnight',
            interval=1,
            backupCount=365,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _configure_third_party_loggers()

def _configure_third_party_loggers():
    """Configure third-party library loggers with appropriate levels"""
    logging.getLogger('redis').setLevel(logging.INFO)
    logging.getLogger('ortools').setLevel(logging.WARNING)

def _extract_context_properties() -> dict:
    """Extract the current optimization context for logging"""
    context = get_current_context()
    if context is None:
        return {}

    properties = {'request_id': context.request_id}
    if context.strategy:
        properties['strategy'] = context.strategy
    if context.phase:
        properties['phase'] = context.phase
    return properties

class AppLogger:
    """Logger instance with automatic optimization context extraction"""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def log_debug(self, message: str):
        self.logger.debug(message, extra=_extract_context_properties())

    def log_info(self, message: str):
        self.logger.info(message, extra=_extract_context_properties())

    def log_warning(self, message: str):
        self.logger.warning(message, extra=_extract_context_properties())

    def log_error(self, message: str):
        self.logger.error(message, extra=_extract_context_properties())
