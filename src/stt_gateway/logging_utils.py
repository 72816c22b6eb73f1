import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_file: Optional[str] = None, log_format: str = LOG_FORMAT) -> logging.Logger:
    """
    Sets up root logging for the gateway process.
    """
    logging.basicConfig(level=level.upper(), format=log_format)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(log_format))
        logging.getLogger().addHandler(file_handler)

    return logging.getLogger("stt_gateway")
