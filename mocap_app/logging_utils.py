import logging

FORMAT = "%(asctime)s %(levelname)s [%(app)s/%(threadName)s] %(name)s: %(message)s"


class AppNameFilter(logging.Filter):
    def __init__(self, app_name: str):
        super().__init__()
        self.app_name = app_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.app = self.app_name
        return True


def setup_logger(app_name: str, level: int | str = logging.INFO) -> logging.Logger:
    """Configure the package loggers; pipeline workers log under their thread name."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    logger = logging.getLogger("mocap_app")
    logger.setLevel(level)
    logging.getLogger("marker_tracking").setLevel(level)

    if not any(getattr(h, "_mocap_stream", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(FORMAT))
        handler.addFilter(AppNameFilter(app_name))
        handler._mocap_stream = True
        logger.addHandler(handler)
        logging.getLogger("marker_tracking").addHandler(handler)

    return logger


def add_file_handler(logger: logging.Logger, app_name: str, log_path: str) -> logging.Handler:
    handler = logging.FileHandler(log_path)
    handler.setFormatter(logging.Formatter(FORMAT))
    handler.addFilter(AppNameFilter(app_name))
    logger.addHandler(handler)
    logging.getLogger("marker_tracking").addHandler(handler)
    return handler


def remove_file_handler(logger: logging.Logger, handler: logging.Handler) -> None:
    logger.removeHandler(handler)
    logging.getLogger("marker_tracking").removeHandler(handler)
    handler.close()
