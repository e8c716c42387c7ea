import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import analytics
import users
import vendors
from database import DATABASE_URL, MongoStore, db, get_store, store as default_store
from errors import (
    AdminError,
    AuthError,
    NotFoundError,
    StoreError,
    ValidationError,
    store_errors,
)
from schemas import (
    AddressUpdate,
    CommissionUpdate,
    ProfileUpdate,
    VendorCreate,
    VendorUpdate,
)
from utils import ok

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if default_store is not None:
        default_store.ensure_indexes()
    else:
        logger.warning("No MONGODB_URI / MONGO_URI / DATABASE_URL set; store-backed routes will fail")
    yield


app = FastAPI(title="ShopFlow Admin API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# -------------------- Errors --------------------

ERROR_STATUS_CODES: dict[type, int] = {
    NotFoundError: 404,
    ValidationError: 400,
    AuthError: 401,
    StoreError: 500,
}


@app.exception_handler(AdminError)
async def admin_error_handler(request: Request, exc: AdminError) -> JSONResponse:
    status_code = ERROR_STATUS_CODES.get(type(exc), 500)
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s -> %d: %s", request.method, request.url.path, status_code, exc.message)
    return JSONResponse(status_code=status_code, content={"success": False, "message": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg", message)
    logger.warning("%s %s -> 400: %s", request.method, request.url.path, message)
    return JSONResponse(status_code=400, content={"success": False, "message": message})


# -------------------- Auth --------------------

def auth_dependency(
    authorization: Optional[str] = Header(None),
    store: MongoStore = Depends(get_store),
) -> dict:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthError("Missing or invalid authorization header")
    token = authorization.split(" ", 1)[1]
    user = store.get_user_by_token(token)
    if not user:
        raise AuthError("Invalid or expired token")
    return user


# -------------------- Health --------------------

@app.get("/")
def read_root():
    return {"message": "ShopFlow Admin API is running"}


@app.get("/health")
def health():
    response = {
        "backend": "running",
        "database": "not configured",
        "database_url": "set" if DATABASE_URL else "not set",
        "database_name": None,
        "collections": [],
    }
    if db is not None:
        response["database_name"] = db.name
        try:
            response["collections"] = db.list_collection_names()[:10]
            response["database"] = "connected"
        except Exception as e:
            logger.warning("Health check could not reach the database: %s", e)
            response["database"] = f"error: {str(e)[:50]}"
    return response


# -------------------- Analytics --------------------

@app.get("/analytics")
def get_analytics(dateRange: str = Query("month"), store: MongoStore = Depends(get_store)):
    with store_errors("Failed to fetch analytics"):
        return ok(analytics.compute_analytics(store, dateRange))


# -------------------- Users: admin --------------------
# /stats and /list are registered ahead of /{user_id} so they are never read as ids.

@app.get("/users/admin/stats")
def user_stats(store: MongoStore = Depends(get_store)):
    with store_errors("Failed to fetch user statistics"):
        return ok(users.user_stats(store))


@app.get("/users/admin/list")
def users_list(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    store: MongoStore = Depends(get_store),
):
    with store_errors("Failed to fetch users list"):
        return ok(users.list_users(store, page, limit))


@app.delete("/users/admin/{user_id}")
def delete_user(user_id: str, store: MongoStore = Depends(get_store)):
    with store_errors("Failed to delete user"):
        count = users.delete_user(store, user_id)
        return ok(message=f"User and {count} associated order(s) deleted successfully")


@app.get("/users/admin/{user_id}")
def user_details(user_id: str, store: MongoStore = Depends(get_store)):
    with store_errors("Failed to fetch user details"):
        return ok(users.user_details(store, user_id))


# -------------------- Users: self-service --------------------

@app.put("/users/profile")
def update_profile(
    payload: ProfileUpdate,
    user: dict = Depends(auth_dependency),
    store: MongoStore = Depends(get_store),
):
    with store_errors("Failed to update profile"):
        return ok(users.update_profile(store, user, payload))


@app.put("/users/address")
def update_address(
    payload: AddressUpdate,
    user: dict = Depends(auth_dependency),
    store: MongoStore = Depends(get_store),
):
    with store_errors("Failed to update address"):
        return ok(users.update_address(store, user, payload))


@app.get("/users/me")
def me(user: dict = Depends(auth_dependency)):
    return ok(user)


# -------------------- Vendors --------------------
# Sub-paths (/slug/..., /{id}/details, /{id}/commission) come before the bare /{id} routes.

@app.post("/vendors", status_code=201)
def create_vendor(payload: VendorCreate, store: MongoStore = Depends(get_store)):
    with store_errors("Failed to create vendor"):
        return ok(vendors.create_vendor(store, payload))


@app.get("/vendors")
def list_vendors(store: MongoStore = Depends(get_store)):
    with store_errors("Failed to fetch vendors"):
        return ok(vendors.list_vendors(store))


@app.get("/vendors/slug/{slug}")
def vendor_by_slug(slug: str, store: MongoStore = Depends(get_store)):
    with store_errors("Failed to fetch vendor"):
        return ok(vendors.get_vendor_by_slug(store, slug))


@app.get("/vendors/{vendor_id}/details")
def vendor_details(vendor_id: str, store: MongoStore = Depends(get_store)):
    with store_errors("Failed to fetch vendor details"):
        return ok(vendors.vendor_details(store, vendor_id))


@app.get("/vendors/{slug}/products")
def vendor_products(
    slug: str,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1),
    sort: str = Query(vendors.DEFAULT_SORT),
    store: MongoStore = Depends(get_store),
):
    with store_errors("Failed to fetch vendor products"):
        result = vendors.vendor_products(store, slug, page, limit, sort)
        return ok(result.pop("data"), **result)


@app.get("/vendors/{vendor_id}")
def get_vendor(vendor_id: str, store: MongoStore = Depends(get_store)):
    with store_errors("Failed to fetch vendor"):
        return ok(vendors.get_vendor(store, vendor_id))


@app.put("/vendors/{vendor_id}/commission")
def update_commission(
    vendor_id: str,
    payload: CommissionUpdate,
    store: MongoStore = Depends(get_store),
):
    with store_errors("Failed to update commission"):
        return ok(vendors.update_commission(store, vendor_id, payload.commission))


@app.put("/vendors/{vendor_id}")
def update_vendor(vendor_id: str, payload: VendorUpdate, store: MongoStore = Depends(get_store)):
    with store_errors("Failed to update vendor"):
        return ok(vendors.update_vendor(store, vendor_id, payload))


@app.delete("/vendors/{vendor_id}")
def delete_vendor(vendor_id: str, store: MongoStore = Depends(get_store)):
    with store_errors("Failed to delete vendor"):
        vendors.delete_vendor(store, vendor_id)
        return ok(message="Vendor deleted")


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
