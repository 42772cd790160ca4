import logging
import os

LOG_DIR_ENV = 'CHATREGISTRY_LOG_DIR'
LOG_FILE = 'registry.log'


def _log_dir():
    default = os.path.join(os.path.dirname(os.path.dirname(__file__)), 'logs')
    return os.environ.get(LOG_DIR_ENV) or default


def setup_logger(name='chatregistry'):
    """Return the named registry logger, configuring it on first use.

    Records at INFO and above go to stderr; everything from DEBUG up is
    appended to registry.log under $CHATREGISTRY_LOG_DIR (or
    chatregistry/logs when unset). Later calls with the same name reuse
    the existing handlers, and records do not propagate to the root logger.

    Args:
        name (str, optional): Logger name. Defaults to 'chatregistry'

    Returns:
        logging.Logger: The configured logger
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    formatter = logging.Formatter('%(asctime)s - %(levelname)s - %(name)s - %(message)s')

    stderr_handler = logging.StreamHandler()
    stderr_handler.setLevel(logging.INFO)

    log_dir = _log_dir()
    os.makedirs(log_dir, exist_ok=True)
    file_handler = logging.FileHandler(os.path.join(log_dir, LOG_FILE))
    file_handler.setLevel(logging.DEBUG)

    for handler in (stderr_handler, file_handler):
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger
