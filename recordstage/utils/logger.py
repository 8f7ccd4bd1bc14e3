import logging

logger = logging.getLogger("recordstage")


def get_logger(name: str):
    if name == "recordstage" or name.startswith("recordstage."):
        return logging.getLogger(name)
    return logger.getChild(name)
