import logging
import os
import sys
import traceback
from datetime import datetime
from typing import Optional

from .config import Config


def handle_exception(exc_type, exc_value, exc_traceback):
    """
    Captura y registra cualquier excepción no controlada en la aplicación.
    Esto asegura que incluso si el proceso termina, el error quedará en el log.
    """
    if issubclass(exc_type, KeyboardInterrupt):
        # No registrar el error si el usuario corta con Ctrl+C
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    error_msg = "".join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    logging.critical(f"Excepción no controlada:\n{error_msg}")


def setup_logging(level: int = logging.INFO, log_dir: Optional[str] = None) -> Optional[str]:
    """Configura el sistema de logging. Retorna la ruta del archivo de log (o None)."""
    log_dir = log_dir or Config.LOGS_DIR
    try:
        os.makedirs(log_dir, exist_ok=True)
    except OSError:
        log_dir = None

    timestamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
    log_filepath = os.path.join(log_dir, f"log_{timestamp}.log") if log_dir else None

    log_formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - [%(module)s:%(lineno)d] - %(message)s'
    )

    file_handler = None
    if log_filepath:
        try:
            file_handler = logging.FileHandler(log_filepath, encoding='utf-8')
            file_handler.setFormatter(log_formatter)
        except OSError:
            file_handler = None
            log_filepath = None

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(log_formatter)

    logger = logging.getLogger()
    logger.setLevel(level)

    if logger.hasHandlers():
        logger.handlers.clear()

    if file_handler:
        logger.addHandler(file_handler)
    logger.addHandler(console_handler)

    sys.excepthook = handle_exception

    if log_filepath:
        logging.info(f"Sistema de logging configurado. Registrando en: {log_filepath}")
    else:
        logging.info("Sistema de logging configurado. Registrando solo en consola")
    return log_filepath
