import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from pymongo.errors import PyMongoError
from starlette.exceptions import HTTPException as StarletteHTTPException

import admin
import auth
import categories
import config
import contact
import content
import lookbook
import orders
import products
import upload
import users
from database import db, ensure_indexes, utcnow

config.configure_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    ensure_indexes()
    logger.info("api_started", environment=config.ENVIRONMENT)
    yield


app = FastAPI(title="Storefront API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.PRODUCTION_ORIGINS if config.IS_PRODUCTION else config.DEVELOPMENT_ORIGINS,
    allow_origin_regex=None if config.IS_PRODUCTION else config.LOCAL_NETWORK_ORIGIN,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# PayU posts the browser back from its own origin
PAYMENT_CALLBACKS = ("/api/orders/payment/success", "/api/orders/payment/failure")


@app.middleware("http")
async def open_payment_callbacks(request: Request, call_next):
    if request.url.path not in PAYMENT_CALLBACKS:
        return await call_next(request)
    if request.method == "OPTIONS":
        response = Response(status_code=204)
    else:
        response = await call_next(request)
    response.headers.setdefault("Access-Control-Allow-Origin", "*")
    response.headers.setdefault("Access-Control-Allow-Methods", "POST, OPTIONS")
    response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type")
    return response


# ---------------- Errors ----------------
@app.exception_handler(StarletteHTTPException)
def http_error(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": str(exc.detail)},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
def validation_error(request: Request, exc: RequestValidationError):
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder({"success": False, "message": "Validation errors", "errors": errors}),
    )


@app.exception_handler(Exception)
def unhandled_error(request: Request, exc: Exception):
    logger.exception("unhandled_error", path=request.url.path, method=request.method)
    body = {"success": False, "message": "Something went wrong!"}
    if not config.IS_PRODUCTION:
        body["error"] = str(exc)
    return JSONResponse(status_code=500, content=body)


# ---------------- Routes ----------------
for module in (auth, products, categories, orders, users, content, lookbook, admin, upload, contact):
    app.include_router(module.router)

os.makedirs(config.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=config.UPLOAD_DIR), name="uploads")


@app.get("/")
def root():
    return {"message": f"{config.STORE_NAME} Storefront API is running"}


@app.get("/api/health")
def health():
    report = {"status": "OK", "timestamp": utcnow().isoformat() + "Z", "database": "connected"}
    try:
        report["collections"] = len(db.list_collection_names())
    except PyMongoError as exc:
        logger.warning("health_database_unreachable", error=str(exc))
        report["status"] = "DEGRADED"
        report["database"] = "unavailable"
    return report


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
