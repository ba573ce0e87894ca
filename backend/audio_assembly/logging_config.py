import logging
import sys
import os
from logging.handlers import RotatingFileHandler

# Define log directory and file
LOG_DIR = os.getenv("LOG_DIR") or "backend/logs"
LOG_FILE = os.path.join(LOG_DIR, "assembly.log")


def setup_logging():
    """
    Configures logging for the application.
    Outputs to console and a rotating file with a detailed format.
    """
    os.makedirs(LOG_DIR, exist_ok=True)

    log_formatter = logging.Formatter(
        "%(asctime)s - %(levelname)s - %(name)s - %(module)s - %(funcName)s - %(lineno)d - %(message)s"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)

    file_handler = RotatingFileHandler(LOG_FILE, maxBytes=1024*1024*5, backupCount=2) # 5MB per file, 2 backups
    file_handler.setFormatter(log_formatter)

    # Avoid adding handlers multiple times (API and worker may both call this)
    if not root_logger.handlers:
        root_logger.addHandler(console_handler)
        root_logger.addHandler(file_handler)
    else:
        has_file_handler = any(isinstance(h, logging.FileHandler) for h in root_logger.handlers)
        if not has_file_handler:
            root_logger.addHandler(file_handler)
        has_console_handler = any(
            isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stdout
            for h in root_logger.handlers
        )
        if not has_console_handler:
            root_logger.addHandler(console_handler)

    logging.getLogger("audio_assembly").setLevel(logging.INFO)
    logging.getLogger("uvicorn").setLevel(logging.INFO)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("celery").setLevel(logging.INFO)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    # httpx logs every request at INFO; the TTS client logs its own summary
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logging.info("Logging configured successfully (console and file).")


if __name__ == "__main__":
    setup_logging()
    logging.getLogger("audio_assembly.test").warning("This is a warning from audio_assembly.test.")
