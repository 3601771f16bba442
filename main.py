import logging
from contextlib import asynccontextmanager
from functools import lru_cache

from fastapi import FastAPI, Depends, HTTPException

from license_client import LicenseClient
from hardware_fingerprint import get_hardware_fingerprint
from config import settings
from exceptions import FetchError
from models import (
    LicenseCheckRequest,
    LicenseCheckResponse,
    LicenseRefreshResponse,
    HealthCheckResponse
)

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

@lru_cache(maxsize=1)
def get_license_client() -> LicenseClient:
    # One client per process so every request shares the same cache.
    return LicenseClient.from_settings(settings)

@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if get_license_client.cache_info().currsize:
        get_license_client().close()

app = FastAPI(
    title="License Client Service",
    description="Entitlement checks against a remotely published license table",
    version=settings.APP_VERSION,
    lifespan=lifespan
)

# API Endpoints
@app.post("/api/license/check", response_model=LicenseCheckResponse)
def check_license(
    request: LicenseCheckRequest,
    client: LicenseClient = Depends(get_license_client)
):
    """
    Check whether a serial key is currently authorized.

    Defaults to this machine's serial key when no identifier is given.
    Any failure to reach or read the remote table answers ``false``.
    """
    identifier = request.identifier or get_hardware_fingerprint()
    return {"identifier": identifier, "authorized": client.is_authorized(identifier)}

@app.post("/api/license/refresh", response_model=LicenseRefreshResponse)
def refresh_license(client: LicenseClient = Depends(get_license_client)):
    """
    Re-read the remote table and replace the cached records.

    The cache is left untouched when the remote source yields nothing.
    """
    try:
        records = client.fetch_entitlements()
    except FetchError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return {"success": True, "records": len(records), "message": "Entitlements refreshed"}

@app.get("/health", response_model=HealthCheckResponse)
def health_check(client: LicenseClient = Depends(get_license_client)):
    return {
        "status": "healthy",
        "service": settings.SERVICE_NAME,
        "version": settings.APP_VERSION,
        "sourceCode": client.state.source_code,
        "hardwareId": get_hardware_fingerprint()
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
