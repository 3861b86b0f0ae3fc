"""
Configuration file for pytest.
"""
import sys
from pathlib import Path

# Project root on sys.path so scripts/ tests import datastreams without install
sys.path.insert(0, str(Path(__file__).parent))
