"""
Services Package
Search, cost comparison and directory logic on top of the data sources
"""

from . import normalization
from . import facility_search
from . import cost_estimation
from . import directory

__all__ = [
    'normalization',
    'facility_search',
    'cost_estimation',
    'directory',
]
