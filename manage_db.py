#!/usr/bin/env python3
"""
Database management script for deployment.
Run this during the build/deployment pipeline to create tables and load
reference data.
"""
import sys

from sqlalchemy.exc import SQLAlchemyError

from arena.app import create_app
from arena.models import db
from arena.seed import seed_reference_data


def deploy():
    """Run deployment tasks."""
    print("Creating database tables...")
    app = create_app(overrides={'SEED_ON_STARTUP': False})
    with app.app_context():
        try:
            db.create_all()
            if seed_reference_data(app.catalog):
                print("✓ Reference data loaded.")
            else:
                print("✓ Reference data already present.")
        except SQLAlchemyError as e:
            print(f"Error preparing database: {e}")
            sys.exit(1)


if __name__ == '__main__':
    deploy()
