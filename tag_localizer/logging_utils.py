import logging

_FORMAT = "%(asctime)s %(levelname)s [%(node)s] %(message)s"


class NodeNameFilter(logging.Filter):
    def __init__(self, node_name: str):
        super().__init__()
        self.node_name = node_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.node = self.node_name
        return True


def setup_logger(node_name: str, level: int | str = logging.INFO) -> logging.Logger:
    logger = logging.getLogger(f"tag_localizer.{node_name}")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler.addFilter(NodeNameFilter(node_name))
        logger.addHandler(handler)

    return logger


def add_file_handler(logger: logging.Logger, node_name: str, log_path: str) -> logging.Handler:
    handler = logging.FileHandler(log_path)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(NodeNameFilter(node_name))
    logger.addHandler(handler)
    return handler
