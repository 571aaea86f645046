import logging
from pathlib import Path
from typing import Optional


def build_logger(log_dir: Optional[Path] = None, level: str = 'INFO', name: str = 'RandomFeatureMaps') -> logging.Logger:
    """Logger for scripts: stream handler, plus a file handler when log_dir is given.

    Library modules only call logging.getLogger(__name__); handlers are attached
    here, on the package logger, so their records propagate to it. Later calls
    only update the level.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))
    if logger.handlers:
        return logger
    fmt = logging.Formatter('%(asctime)s - %(levelname)s - %(message)s')
    sh = logging.StreamHandler()
    sh.setFormatter(fmt)
    logger.addHandler(sh)
    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_dir / 'embedding.log')
        fh.setFormatter(fmt)
        logger.addHandler(fh)
    return logger
