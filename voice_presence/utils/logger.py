# Logger - Centralized Logging System
# Singleton loggers so reconnects never stack duplicate handlers

"""
Logger Module

Responsibilities:
- Setup centralized logging with singleton pattern
- Configure log levels
- Configure log handlers (console, optional rotating file)
- Log formatting
"""

import logging
import sys
import atexit
from pathlib import Path
from logging.handlers import RotatingFileHandler

# Global registry to track configured loggers
_configured_loggers = {}

def setup_logger(name: str = "voice_presence", level: str = "INFO", log_file: str = None):
    """
    Setup logger with console and file handlers (singleton pattern)
    
    A gateway client rebuilds its transport many times over its life, so
    components ask for their logger repeatedly. The first call configures it,
    later calls return the same instance untouched.
    
    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        
    Returns:
        Configured logger instance (existing or new)
    """
    if name in _configured_loggers:
        return _configured_loggers[name]
    
    logger = logging.getLogger(name)
    
    if logger.handlers:
        _configured_loggers[name] = logger
        return logger
    
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )
    
    # Console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.INFO)
    logger.addHandler(console_handler)
    
    # File handler with rotation (if specified)
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5,
            encoding='utf-8'
        )
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)  # File gets all levels
        logger.addHandler(file_handler)
    
    def cleanup_handlers():
        """Close all handlers on interpreter exit."""
        for handler in logger.handlers[:]:
            try:
                handler.close()
                logger.removeHandler(handler)
            except Exception:
                pass  # Interpreter is shutting down
    
    atexit.register(cleanup_handlers)
    
    _configured_loggers[name] = logger
    
    return logger
