"""
Logging configuration for the import pipeline.
"""

import logging
import os
import sys

# Create logger
logger = logging.getLogger('product_import')
logger.setLevel(os.getenv('PRODUCT_IMPORT_LOG_LEVEL', 'INFO').upper())
logger.propagate = False

if not logger.handlers:
    # Console handler with formatting
    console = logging.StreamHandler(sys.stdout)

    formatter = logging.Formatter(
        '%(asctime)s | %(levelname)-5s | %(name)s | %(message)s',
        datefmt='%H:%M:%S'
    )
    console.setFormatter(formatter)

    logger.addHandler(console)


# Component-specific loggers
def get_component_logger(name):
    """Get a child logger for a pipeline component (driver, extract, translate, ...)."""
    return logger.getChild(name)
