import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Query, Request, Response, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel
from pymongo.database import Database
from starlette.exceptions import HTTPException as StarletteHTTPException

from auth import authenticate, bootstrap_admin
from config import UPLOAD_URL_PREFIX, Settings
from database import connect, ensure_indexes
from errors import AppError, AuthError, UnexpectedError, ValidationError
from schemas import Enquiry, NonEmptyStr
from stores import AdvertisementStore, EnquiryStore, MediaStore, ServiceStore, VisitorStore, parse_model
from uploads import ImageStorage, LocalImageStorage, build_storage

logger = logging.getLogger(__name__)


# -----------------------------
# Application context
# -----------------------------
@dataclass
class AppContext:
    settings: Settings
    db: Database
    images: ImageStorage
    advertisements: AdvertisementStore
    services: ServiceStore
    enquiries: EnquiryStore
    visitors: VisitorStore

    @classmethod
    def build(cls, settings: Settings, db: Database, images: ImageStorage) -> "AppContext":
        return cls(
            settings=settings,
            db=db,
            images=images,
            advertisements=AdvertisementStore(db, images),
            services=ServiceStore(db, images),
            enquiries=EnquiryStore(db),
            visitors=VisitorStore(db),
        )


def get_context(request: Request) -> AppContext:
    return request.app.state.context


def store_upload(ctx: AppContext, request: Request, upload: UploadFile) -> str:
    # One byte past the limit is enough to reject without reading the whole body.
    data = upload.file.read(ctx.images.max_bytes + 1)
    return ctx.images.store(data, upload.content_type, upload.filename, base_url=str(request.base_url))


def has_file(upload: Optional[UploadFile]) -> bool:
    return upload is not None and bool(upload.filename)


def update_with_upload(
    ctx: AppContext, request: Request, store: MediaStore, record_id: str, fields: dict, image: Optional[UploadFile]
):
    store.get_by_id(record_id)
    new_url = None
    if has_file(image):
        new_url = fields["image"] = store_upload(ctx, request, image)
    try:
        return store.update(record_id, fields)
    except AppError:
        store.discard_images([new_url])
        raise


# -----------------------------
# Schemas (Pydantic models)
# -----------------------------
class MediaForm(BaseModel):
    title: NonEmptyStr
    description: NonEmptyStr


class PartialForm(BaseModel):
    title: Optional[NonEmptyStr] = None
    description: Optional[NonEmptyStr] = None


class AdvertisementOut(BaseModel):
    id: str
    title: str
    image: str
    description: str


class ServiceOut(BaseModel):
    id: str
    title: str
    description: str
    image: Optional[str] = None


class ServicePage(BaseModel):
    services: List[ServiceOut]
    totalCount: int
    page: int
    totalPages: int


class EnquiryOut(BaseModel):
    id: str
    name: str
    email: str
    mobile: str
    subject: str
    address: str
    message: str
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None


class EnquiryResult(BaseModel):
    message: str
    enquiry: EnquiryOut


class VisitorIn(BaseModel):
    ipAddress: NonEmptyStr
    city: NonEmptyStr
    region: NonEmptyStr
    country: NonEmptyStr


class VisitorOut(BaseModel):
    id: str
    ipAddress: str
    city: str
    region: str
    country: str
    visitTime: Optional[datetime] = None


class LoginRequest(BaseModel):
    username: NonEmptyStr
    password: str


class LoginResponse(BaseModel):
    message: str
    isAdmin: bool


class BulkDeleteRequest(BaseModel):
    ids: List[str]


class DeleteResult(BaseModel):
    message: str
    deletedCount: int = 1


class UploadResult(BaseModel):
    imageUrl: str


MAX_PAGE = 100_000
MAX_PAGE_SIZE = 100

router = APIRouter(prefix="/api")


# -----------------------------
# Root & health
# -----------------------------
health = APIRouter()


@health.get("/")
def read_root():
    return {"message": "Business admin API running"}


@health.get("/test")
def test_database(ctx: AppContext = Depends(get_context)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": ctx.settings.database_name,
        "upload_backend": ctx.settings.upload_backend,
        "connection_status": "Not Connected",
        "collections": [],
    }
    try:
        response["collections"] = ctx.db.list_collection_names()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        logger.warning("Database check failed: %s", e)
        response["database"] = f"⚠️ Connected but Error: {str(e)[:80]}"
    return response


# -----------------------------
# Auth
# -----------------------------
@router.post("/login", response_model=LoginResponse)
def login(payload: LoginRequest, ctx: AppContext = Depends(get_context)):
    result = authenticate(ctx.db, payload.username, payload.password)
    if not result["isAdmin"]:
        raise AuthError("Unauthorized: Only admins can login", forbidden=True)
    return {"message": "Login successful", "isAdmin": True}


# -----------------------------
# Advertisements CRUD
# -----------------------------
@router.get("/advertisements", response_model=List[AdvertisementOut])
def list_advertisements(ctx: AppContext = Depends(get_context)):
    return ctx.advertisements.list_all()


@router.get("/advertisements/{advertisement_id}", response_model=AdvertisementOut)
def get_advertisement(advertisement_id: str, ctx: AppContext = Depends(get_context)):
    return ctx.advertisements.get_by_id(advertisement_id)


@router.post("/advertisements", response_model=AdvertisementOut, status_code=201)
def create_advertisement(
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    form = parse_model(MediaForm, {"title": title, "description": description})
    if not has_file(image):
        raise ValidationError("An image is required", field="image")
    url = store_upload(ctx, request, image)
    return ctx.advertisements.create({**form.model_dump(), "image": url})


@router.put("/advertisements/{advertisement_id}", response_model=AdvertisementOut)
def update_advertisement(
    advertisement_id: str,
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    fields = parse_model(PartialForm, {"title": title, "description": description}).model_dump(exclude_none=True)
    return update_with_upload(ctx, request, ctx.advertisements, advertisement_id, fields, image)


@router.delete("/advertisements/{advertisement_id}", response_model=DeleteResult)
def delete_advertisement(advertisement_id: str, ctx: AppContext = Depends(get_context)):
    ctx.advertisements.delete_one(advertisement_id)
    return {"message": "Advertisement deleted successfully"}


@router.delete("/advertisements", response_model=DeleteResult)
def delete_selected_advertisements(payload: BulkDeleteRequest, ctx: AppContext = Depends(get_context)):
    deleted = ctx.advertisements.delete_many(payload.ids)
    return {"message": "Selected advertisements deleted successfully", "deletedCount": deleted}


# -----------------------------
# Services CRUD
# -----------------------------
@router.get("/services", response_model=ServicePage)
def list_services(
    page: int = Query(1, ge=1, le=MAX_PAGE),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    ctx: AppContext = Depends(get_context),
):
    result = ctx.services.paginate(page, limit)
    return {
        "services": result.records,
        "totalCount": result.total_count,
        "page": result.page,
        "totalPages": result.total_pages,
    }


@router.get("/services/{service_id}", response_model=ServiceOut)
def get_service(service_id: str, ctx: AppContext = Depends(get_context)):
    return ctx.services.get_by_id(service_id)


@router.post("/services", response_model=ServiceOut, status_code=201)
def create_service(
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    fields = parse_model(MediaForm, {"title": title, "description": description}).model_dump()
    fields["image"] = store_upload(ctx, request, image) if has_file(image) else None
    return ctx.services.create(fields)


@router.put("/services/{service_id}", response_model=ServiceOut)
def update_service(
    service_id: str,
    request: Request,
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    fields = parse_model(PartialForm, {"title": title, "description": description}).model_dump(exclude_none=True)
    return update_with_upload(ctx, request, ctx.services, service_id, fields, image)


@router.delete("/services/{service_id}", response_model=DeleteResult)
def delete_service(service_id: str, ctx: AppContext = Depends(get_context)):
    ctx.services.delete_one(service_id)
    return {"message": "Service deleted successfully"}


@router.delete("/services", response_model=DeleteResult)
def delete_selected_services(payload: BulkDeleteRequest, ctx: AppContext = Depends(get_context)):
    deleted = ctx.services.delete_many(payload.ids)
    return {"message": "Selected services deleted successfully", "deletedCount": deleted}


# -----------------------------
# Enquiries (contact form)
# -----------------------------
@router.post("/enquiries", response_model=EnquiryResult, status_code=201)
def submit_enquiry(payload: Enquiry, response: Response, ctx: AppContext = Depends(get_context)):
    enquiry, created = ctx.enquiries.upsert(payload.model_dump())
    if not created:
        response.status_code = 200
        return {"message": "Enquiry updated successfully", "enquiry": enquiry}
    return {"message": "Enquiry added successfully", "enquiry": enquiry}


@router.get("/enquiries", response_model=List[EnquiryOut])
def list_enquiries(ctx: AppContext = Depends(get_context)):
    return ctx.enquiries.list_all()


@router.delete("/enquiries", response_model=DeleteResult)
def delete_selected_enquiries(payload: BulkDeleteRequest, ctx: AppContext = Depends(get_context)):
    deleted = ctx.enquiries.delete_many(payload.ids)
    return {"message": "Selected enquiries deleted successfully", "deletedCount": deleted}


# -----------------------------
# Visitors
# -----------------------------
@router.post("/visitors", response_model=VisitorOut, status_code=201)
def record_visit(payload: VisitorIn, ctx: AppContext = Depends(get_context)):
    visitor, _created = ctx.visitors.record_visit(payload.model_dump())
    return visitor


@router.get("/visitors", response_model=List[VisitorOut])
def list_visitors(ctx: AppContext = Depends(get_context)):
    return ctx.visitors.list_all()


@router.delete("/visitors", response_model=DeleteResult)
def delete_visitors(
    ids: Optional[List[str]] = Query(None),
    bracketed: Optional[List[str]] = Query(None, alias="ids[]"),
    ctx: AppContext = Depends(get_context),
):
    # ?ids=a,b, ?ids=a&ids=b and ?ids[]=a are all accepted.
    values = [part for value in (ids or []) + (bracketed or []) for part in value.split(",")]
    deleted = ctx.visitors.delete_many(values)
    return {"message": "Visitors deleted successfully", "deletedCount": deleted}


# -----------------------------
# Standalone image upload
# -----------------------------
@router.post("/upload", response_model=UploadResult)
def upload_image(
    request: Request,
    image: Optional[UploadFile] = File(None),
    ctx: AppContext = Depends(get_context),
):
    if not has_file(image):
        raise ValidationError("No file uploaded", field="image")
    return {"imageUrl": store_upload(ctx, request, image)}


# -----------------------------
# Error translation
# -----------------------------
LOCATIONS = ("body", "query", "path", "header")


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(p for p in err["loc"] if isinstance(p, str) and p not in LOCATIONS), "msg": err["msg"]}
            for err in exc.errors()
        ]
        fields = sorted({e["field"] for e in errors if e["field"]})
        error = ValidationError(
            f"Missing or invalid fields: {', '.join(fields)}" if fields else "Malformed request",
            details={"errors": errors},
        )
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(status_code=exc.status_code, content={"message": str(exc.detail)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=UnexpectedError().to_dict())


def create_app(
    settings: Optional[Settings] = None,
    db: Optional[Database] = None,
    images: Optional[ImageStorage] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    db = db if db is not None else connect(settings)
    images = images or build_storage(settings)
    context = AppContext.build(settings, db, images)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ensure_indexes(db)
        bootstrap_admin(db, settings.admin_username, settings.admin_password)
        logger.info("Started with %s image storage", settings.upload_backend)
        yield

    app = FastAPI(title="Business Admin API", lifespan=lifespan)
    app.state.context = context

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    if isinstance(images, LocalImageStorage):
        app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=images.directory), name="uploads")

    register_error_handlers(app)
    app.include_router(health)
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    port = Settings.from_env().port
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=port)
