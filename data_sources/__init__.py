"""
Data Sources Package
API clients and storage for external and curated facility data
"""

from . import geocoding
from . import osm_api
from . import facility_store
from . import cache

__all__ = ['geocoding', 'osm_api', 'facility_store', 'cache']
