import logging
import sys


def setup_logging(level="INFO"):
    """
    Give the root logger a stderr handler unless the host already configured one.

    Under gunicorn (or pytest) the root logger already has handlers; those are
    left alone, so calling this from every app factory run is harmless.
    """
    root = logging.getLogger()
    if not root.handlers:
        root.setLevel(level)
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(handler)

    logging.getLogger("backend").setLevel(level)
    # pymongo's heartbeat chatter is noise at INFO.
    logging.getLogger("pymongo").setLevel(logging.WARNING)
