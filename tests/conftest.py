"""
Pytest configuration for the pipeline engine tests.

Puts the project root on the Python path so tests can import lazy, models,
collectors and the other top-level modules without installing the project.
"""

import sys
from pathlib import Path

parent_dir = Path(__file__).parent.parent
if str(parent_dir) not in sys.path:
    sys.path.insert(0, str(parent_dir))

import pytest

from models import EngineSettings


@pytest.fixture
def settings():
    """Small pool with several partitions so parallel paths really split."""
    return EngineSettings(max_workers=4, min_partition_size=1, partitions_per_worker=2)


@pytest.fixture
def fruits():
    return ["Apple", "Banana", "Orange", "Grapes", "Banana", "Mango", "Peach", "Orange"]


@pytest.fixture
def employees():
    return [
        {"name": "John Doe", "salary": 45000, "department": "IT", "type": "Full-time"},
        {"name": "Alice Smith", "salary": 55000, "department": "HR", "type": "Full-time"},
        {"name": "Bob Johnson", "salary": 50000, "department": "IT", "type": "Contract"},
        {"name": "Mary Davis", "salary": 60000, "department": "Finance", "type": "Full-time"},
        {"name": "David Brown", "salary": 75000, "department": "Finance", "type": "Part-time"},
        {"name": "Emily Clark", "salary": 48000, "department": "IT", "type": "Full-time"},
    ]
