from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from dotenv import load_dotenv
from functools import lru_cache
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from config import get_settings
from logging_config import get_logger, log_error, setup_logging
from data_sources.cache import build_cache
from data_sources.error_handling import CareConnectError, UpstreamUnavailable
from data_sources.facility_store import FacilityStore
from data_sources.geocoding import NominatimGeocoder
from data_sources.osm_api import OverpassClient
from services.cost_estimation import CostComparison, common_procedures
from services.directory import FacilityDirectory
from services.facility_search import FacilitySearch

# Load environment variables
load_dotenv()

settings = get_settings()
setup_logging(settings.log_level, settings.log_json)
logger = get_logger(__name__)

API_VERSION = "1.0.0"


##########################
# REQUEST MODELS
##########################

class SearchProvidersRequest(BaseModel):
    location: str
    radius: float = 10.0
    care_type: Optional[str] = Field(None, alias="careType")
    payment_options: List[str] = Field(default_factory=list, alias="paymentOptions")

    model_config = ConfigDict(populate_by_name=True)


class DirectorySearchRequest(BaseModel):
    location: str
    radius: float = 10.0
    facility_type: Optional[str] = Field(None, alias="facilityType")
    payment_options: List[str] = Field(default_factory=list, alias="paymentOptions")

    model_config = ConfigDict(populate_by_name=True)


class FacilityAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = Field(None, alias="zipCode")

    model_config = ConfigDict(populate_by_name=True)


class FacilityRequest(BaseModel):
    """Create/update body for a directory facility. Omitted fields are left alone on update."""
    name: Optional[str] = None
    facility_type: Optional[str] = Field(None, alias="facilityType")
    address: Optional[FacilityAddress] = None
    contact: Optional[Dict[str, str]] = None
    hours: Optional[Dict[str, str]] = None
    services: Optional[List[str]] = None
    cost_level: Optional[int] = Field(None, alias="costLevel")
    payment_options: Optional[Dict[str, bool]] = Field(None, alias="paymentOptions")
    procedure_costs: Optional[List[Dict[str, Any]]] = Field(None, alias="procedureCosts")
    accessibility: Optional[Dict[str, bool]] = None
    osm_id: Optional[str] = Field(None, alias="osmId")

    model_config = ConfigDict(populate_by_name=True)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_unset=True)


class CostCompareRequest(BaseModel):
    procedure_name: str = Field(..., alias="procedureName")
    zip_code: str = Field(..., alias="zipCode")
    insurance_type: Optional[str] = Field("none", alias="insuranceType")
    radius: float = 25.0

    model_config = ConfigDict(populate_by_name=True)


##########################
# DEPENDENCIES
##########################

@lru_cache(maxsize=1)
def get_cache():
    return build_cache(settings.geocode_cache_ttl, settings.cache_max_entries, settings.redis_url)


@lru_cache(maxsize=1)
def get_geocoder() -> NominatimGeocoder:
    return NominatimGeocoder(settings, cache=get_cache())


@lru_cache(maxsize=1)
def get_overpass() -> OverpassClient:
    return OverpassClient(settings)


@lru_cache(maxsize=1)
def get_store() -> FacilityStore:
    return FacilityStore(settings.facility_db_path)


def get_search(geocoder: NominatimGeocoder = Depends(get_geocoder),
               overpass: OverpassClient = Depends(get_overpass),
               store: FacilityStore = Depends(get_store)) -> FacilitySearch:
    return FacilitySearch(geocoder, overpass, store, settings)


def get_directory(store: FacilityStore = Depends(get_store),
                  geocoder: NominatimGeocoder = Depends(get_geocoder)) -> FacilityDirectory:
    return FacilityDirectory(store, geocoder)


def get_cost_comparison(search: FacilitySearch = Depends(get_search)) -> CostComparison:
    return CostComparison(search)


app = FastAPI(
    title="CareConnect API",
    description="Find nearby healthcare facilities and compare procedure costs",
    version=API_VERSION
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


##########################
# ERROR ENVELOPES
##########################

def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


@app.exception_handler(CareConnectError)
def careconnect_error_handler(request: Request, exc: CareConnectError):
    if isinstance(exc, UpstreamUnavailable):
        log_error(logger, "upstream", str(exc), api_name=exc.api_name,
                  endpoint=request.url.path, status_code=exc.upstream_status)
    else:
        logger.info(f"{type(exc).__name__} on {request.url.path}: {exc}")
    return _error(exc.status_code, str(exc))


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p not in ("body", "query", "path"))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    else:
        message = "Invalid request"
    return _error(400, message)


@app.exception_handler(Exception)
def unhandled_error_handler(request: Request, exc: Exception):
    log_error(logger, "internal", f"Unhandled error on {request.url.path}: {exc}",
              exc_info=exc, endpoint=request.url.path)
    return _error(500, "Server Error")


##########################
# ROUTES
##########################

@app.get("/")
def root():
    """Service info."""
    return {
        "service": "CareConnect API",
        "status": "running",
        "version": API_VERSION,
        "endpoints": {
            "search": "POST /search-providers",
            "directory": "/facilities",
            "directory_search": "POST /facilities/search",
            "details": "/osm/{element_type}/{osm_id}",
            "cost_compare": "POST /cost-compare",
            "procedures": "/procedures",
            "docs": "/docs"
        }
    }


@app.get("/health")
def health_check(cache=Depends(get_cache)):
    """Health check with geocode cache stats."""
    if cache is not None:
        cache.cleanup_expired()
    return {
        "success": True,
        "status": "healthy",
        "version": API_VERSION,
        "cache_stats": cache.stats() if cache is not None else {"backend": "disabled"},
    }


@app.post("/search-providers")
def search_providers(body: SearchProvidersRequest, search: FacilitySearch = Depends(get_search)):
    """
    Live search of OpenStreetMap healthcare facilities around a location.

    Body:
        location: Address, city or ZIP code
        radius: Kilometers (default 10)
        careType: Optional facility type substring ("clinic", "hospital")
        paymentOptions: Optional subset of slidingScale, freeCare, insurance
    """
    logger.info(f"Provider search request: {body.location}", extra={"location": body.location})
    result = search.search(body.location, body.radius, body.care_type, body.payment_options)
    return {"success": True, **result.to_dict()}


@app.get("/facilities")
def list_facilities(directory: FacilityDirectory = Depends(get_directory)):
    facilities = directory.list()
    return {"success": True, "count": len(facilities), "data": [f.to_dict() for f in facilities]}


@app.post("/facilities", status_code=201)
def create_facility(body: FacilityRequest, directory: FacilityDirectory = Depends(get_directory)):
    facility = directory.create(body.changes())
    return {"success": True, "data": facility.to_dict()}


@app.post("/facilities/search")
def search_facilities(body: DirectorySearchRequest, search: FacilitySearch = Depends(get_search)):
    """Radius search over the curated directory."""
    result = search.search_directory(body.location, body.radius, body.facility_type, body.payment_options)
    return {"success": True, **result.to_dict()}


@app.get("/facilities/{facility_id}")
def get_facility(facility_id: int, directory: FacilityDirectory = Depends(get_directory)):
    return {"success": True, "data": directory.get(facility_id).to_dict()}


@app.put("/facilities/{facility_id}")
def update_facility(facility_id: int, body: FacilityRequest,
                    directory: FacilityDirectory = Depends(get_directory)):
    facility = directory.update(facility_id, body.changes())
    return {"success": True, "data": facility.to_dict()}


@app.delete("/facilities/{facility_id}")
def delete_facility(facility_id: int, directory: FacilityDirectory = Depends(get_directory)):
    directory.delete(facility_id)
    return {"success": True, "message": "Facility deactivated"}


@app.get("/osm/{element_type}/{osm_id}")
def get_osm_facility(element_type: str, osm_id: int, search: FacilitySearch = Depends(get_search)):
    """Normalized detail for a single OpenStreetMap element (node/way/relation)."""
    facility = search.get_facility_details(element_type, osm_id)
    return {"success": True, "data": facility.to_dict()}


@app.post("/cost-compare")
def cost_compare(body: CostCompareRequest, comparison: CostComparison = Depends(get_cost_comparison)):
    """
    Compare insurance-adjusted costs of a procedure near a ZIP code.

    Estimates are a display simulation; the response carries a disclaimer.
    """
    result = comparison.compare_costs(body.procedure_name, body.zip_code, body.insurance_type, body.radius)
    return {"success": True, **result}


@app.get("/procedures")
def list_procedures():
    return {"success": True, "data": common_procedures()}


@app.post("/cache/clear")
def clear_cache_endpoint(cache=Depends(get_cache)):
    """Clear the geocode cache."""
    cleared = cache.clear() if cache is not None else 0
    return {"success": True, "message": f"Cleared {cleared} cache entries"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
