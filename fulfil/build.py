#!/usr/bin/env python3
"""
Database build for the fulfillment engine
Creates the tables and optionally seeds debug data
"""

from fulfil import create_app, db
from fulfil.logger import get_logger

logger = get_logger("fulfil.build")


def build_models():
    """Create every table registered on the metadata"""
    # Model modules register themselves on import
    from fulfil import data  # noqa: F401

    db.create_all()
    logger.info("All database tables created")


def build_database(enable_debug_data=True, app=None):
    """
    Build the database

    Args:
        enable_debug_data (bool): Whether to insert the sample catalog and PO
        app: Application to build for (a new one is created when omitted)

    Returns:
        dict: Summary of the debug data step
    """
    app = app or create_app()

    with app.app_context():
        logger.info(f"Starting database build - debug data: {enable_debug_data}")
        build_models()

        summary = {}
        if enable_debug_data:
            from fulfil.debug.debug_data_manager import insert_debug_data
            logger.info("Inserting debug data...")
            summary = insert_debug_data(enabled=True)

        logger.info("Database build completed successfully")
        return summary


if __name__ == '__main__':
    build_database()
