import logging


def configure_logging(level: str = "INFO") -> None:
    """
    Configure logging for the signaling relay.
    """

    # Convert "INFO" -> logging.INFO etc.
    numeric_level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # engineio logs every packet at INFO; keep it quiet unless debugging.
    if numeric_level > logging.DEBUG:
        logging.getLogger("engineio").setLevel(logging.WARNING)
        logging.getLogger("socketio").setLevel(logging.WARNING)
