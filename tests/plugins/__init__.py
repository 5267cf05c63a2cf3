"""
Tests for the Dictionary Sync Plugin Modules

Unit tests run against mocked psycopg2 connections; property tests (resume,
idempotence, termination) run against the in-memory fakes in fakes.py.
"""

import os
import sys

# Add plugins directory to Python path (Airflow does this automatically at runtime)
plugins_dir = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..', 'plugins'))
if plugins_dir not in sys.path:
    sys.path.insert(0, plugins_dir)
