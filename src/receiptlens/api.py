"""HTTP surface for receipt extraction."""

from fastapi import Body, Depends, FastAPI, File, Form, HTTPException, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from receiptlens import __version__
from receiptlens.config import Settings, load_settings
from receiptlens.extraction.errors import ErrorCode
from receiptlens.logging import get_logger
from receiptlens.models import (
    ExtractionOptions,
    ExtractionRecord,
    ImageFileInfo,
    ServiceHealth,
    UploadedImage,
    ValidationReport,
)
from receiptlens.service import ReceiptExtractionError, ReceiptService, build_service
from receiptlens.storage.images import LocalImageStore

logger = get_logger(__name__)


class CurrenciesOut(BaseModel):
    currencies: list[str]


class ReceiptPageOut(BaseModel):
    receipts: list[ExtractionRecord]
    limit: int
    offset: int
    count: int


def get_service(request: Request) -> ReceiptService:
    return request.app.state.service


def get_image_store(request: Request) -> LocalImageStore | None:
    return request.app.state.image_store


def create_app(
    service: ReceiptService | None = None,
    image_store: LocalImageStore | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the FastAPI app; collaborators default to the configured ones."""
    settings = settings or load_settings()
    if service is None:
        service = build_service(settings)
    if image_store is None and isinstance(service.image_store, LocalImageStore):
        image_store = service.image_store

    app = FastAPI(title="ReceiptLens API", version=__version__)
    app.state.service = service
    app.state.image_store = image_store

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    @app.exception_handler(ReceiptExtractionError)
    async def extraction_error_handler(
        request: Request, exc: ReceiptExtractionError
    ) -> JSONResponse:
        return JSONResponse(status_code=400, content=exc.response.model_dump(mode="json"))

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={
                "status": "error",
                "error_code": ErrorCode.VALIDATION_ERROR.value,
                "message": "Request validation failed",
                "details": [
                    f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                    for error in exc.errors()
                ],
            },
        )

    @app.post("/extract-receipt-details", response_model=ExtractionRecord)
    async def extract_receipt_details(
        file: UploadFile | None = File(None),
        custom_id: str | None = Form(None, alias="customId"),
        save_image: bool = Form(True, alias="saveImage"),
        include_metadata: bool = Form(False, alias="includeMetadata"),
        language_hint: str | None = Form(None, alias="languageHint"),
        service: ReceiptService = Depends(get_service),
    ) -> ExtractionRecord:
        upload = None
        if file is not None:
            oversized = file.size is not None and file.size > service.max_file_size
            upload = UploadedImage(
                filename=file.filename or "",
                content_type=file.content_type or "",
                content=b"" if oversized else await file.read(),
                declared_size=file.size if oversized else None,
            )
            logger.info(
                f"Receipt extraction request received - File: {upload.filename}, "
                f"Size: {upload.size} bytes"
            )
        options = ExtractionOptions(
            custom_id=custom_id or None,
            save_image=save_image,
            include_metadata=include_metadata,
            language_hint=language_hint or None,
        )
        return await service.extract_receipt_details(upload, options)

    @app.get("/extract-receipt-details/currencies", response_model=CurrenciesOut)
    def get_supported_currencies(
        service: ReceiptService = Depends(get_service),
    ) -> CurrenciesOut:
        return CurrenciesOut(currencies=service.get_supported_currencies())

    @app.get("/extract-receipt-details/health", response_model=ServiceHealth)
    async def get_service_health(
        service: ReceiptService = Depends(get_service),
    ) -> ServiceHealth:
        return await service.get_service_health()

    @app.post("/extract-receipt-details/validate", response_model=ValidationReport)
    def validate_extraction(
        data: dict = Body(...),
        service: ReceiptService = Depends(get_service),
    ) -> ValidationReport:
        return service.validate_extraction(data)

    @app.get(
        "/extract-receipt-details/history/{extraction_id}",
        response_model=ExtractionRecord,
    )
    async def get_extraction(
        extraction_id: str,
        service: ReceiptService = Depends(get_service),
    ) -> ExtractionRecord:
        record = await service.get_extraction_by_id(extraction_id)
        if record is None:
            raise HTTPException(
                status_code=404, detail=f"Extraction {extraction_id} not found"
            )
        return record

    @app.get("/extract-receipt-details/receipts", response_model=ReceiptPageOut)
    async def list_receipts(
        limit: int = Query(50, ge=1, le=100),
        offset: int = Query(0, ge=0),
        service: ReceiptService = Depends(get_service),
    ) -> ReceiptPageOut:
        receipts = await service.list_extractions(limit=limit, offset=offset)
        return ReceiptPageOut(
            receipts=receipts, limit=limit, offset=offset, count=len(receipts)
        )

    @app.get("/storage/images/{filename}")
    def get_image(
        filename: str,
        image_store: LocalImageStore | None = Depends(get_image_store),
    ) -> FileResponse:
        if image_store is None:
            raise HTTPException(status_code=404, detail="Image storage is disabled")
        try:
            path = image_store.get_path(filename)
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        return FileResponse(path)

    @app.get("/storage/info/{filename}", response_model=ImageFileInfo)
    def get_image_info(
        filename: str,
        image_store: LocalImageStore | None = Depends(get_image_store),
    ) -> ImageFileInfo:
        if image_store is None:
            raise HTTPException(status_code=404, detail="Image storage is disabled")
        try:
            return image_store.stats(filename)
        except FileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e

    return app
