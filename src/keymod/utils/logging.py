import logging
import sys

from ..config import KeyModConfig, load_config


def get_logger(name: str = "keymod"):
    logger = logging.getLogger(name)
    if not logger.handlers:
        h = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s: %(message)s")
        h.setFormatter(fmt)
        logger.addHandler(h)
        logger.setLevel(load_config().log_level.upper())
    return logger


def apply_config(cfg: KeyModConfig, name: str = "keymod") -> None:
    """Re-apply ``cfg.log_level``; a config loaded after import can change the level."""
    get_logger(name).setLevel(cfg.log_level.upper())
