"""
FastAPI Photo Frame Collage Application
A web API that lays out photos around a central main photo and renders the page
"""

import io
import uuid
import json
import re
import logging
import time
from typing import List, Optional
from datetime import datetime
from enum import Enum
from collections import defaultdict
from logging.handlers import RotatingFileHandler

import PIL
from fastapi import FastAPI, UploadFile, File, HTTPException, Request, Form
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from PIL import Image
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST

from config import AppSettings
from grid_layout import compute_grid_layout, side_photo_order
from layout_types import (
    GridLayoutOptions,
    InvalidRequest,
    LayoutRequest,
    LayoutResult,
    RingLayoutResult,
    RingPattern,
)
from render import (
    CollageRenderer,
    FILE_EXTENSIONS,
    FitMode,
    HEX_COLOR_RE,
    MEDIA_TYPES,
    OutputFormat,
    export_collage,
    open_image,
    page_size_px,
)
from ring_layout import DEFAULT_MAX_RINGS, compute_ring_layout, ring_capacity


def _configure_logging():
    handlers = [logging.StreamHandler()]
    if settings.log_to_file:
        handlers.append(RotatingFileHandler(
            settings.log_file_path,
            maxBytes=settings.log_max_bytes,
            backupCount=settings.log_backup_count
        ))
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )
    return logging.getLogger(__name__)

# Load settings
settings = AppSettings()

# Configure logging (after settings)
logger = _configure_logging()

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Lay out photos around a central main photo and export print-ready pages",
    version=settings.app_version
)
# Prometheus metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'path', 'status']
)
REQUEST_LATENCY = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency (seconds)',
    ['method', 'path']
)
LAYOUTS_COMPUTED = Counter(
    'collage_layouts_total',
    'Layouts computed',
    ['pattern', 'degraded']
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Configuration
MAX_IMAGE_SIZE = settings.max_image_size
MAX_TOTAL_SIZE = settings.max_total_size
MAX_CANVAS_PIXELS = settings.max_canvas_pixels
RING_MAX_PHOTOS = ring_capacity(DEFAULT_MAX_RINGS) + 1

# Guard against decompression bombs for very large images
Image.MAX_IMAGE_PIXELS = MAX_CANVAS_PIXELS

# Layouts are computed on the display page and scaled up at render time
PAGE_WIDTH_PX, PAGE_HEIGHT_PX = page_size_px(settings.page_width_mm, settings.page_height_mm, settings.display_dpi)
GRID_OPTIONS = GridLayoutOptions.from_settings(settings)


class CollagePattern(str, Enum):
    GRID = "grid"
    HEXAGON = "hexagon"
    CIRCULAR = "circular"


class GridLayoutPayload(BaseModel):
    page_width: int = Field(default=PAGE_WIDTH_PX)
    page_height: int = Field(default=PAGE_HEIGHT_PX)
    gap: int = Field(default=settings.gap_px)
    total_photo_count: int
    main_photo_index: int = Field(default=0)
    options: Optional[GridLayoutOptions] = None


class RingLayoutPayload(BaseModel):
    page_width: int = Field(default=PAGE_WIDTH_PX)
    page_height: int = Field(default=PAGE_HEIGHT_PX)
    gap: int = Field(default=settings.gap_px)
    total_photo_count: int
    pattern: RingPattern = Field(default=RingPattern.HEXAGON)


@app.exception_handler(InvalidRequest)
async def invalid_request_handler(request: Request, exc: InvalidRequest):
    logger.warning(f"Invalid layout request: {exc}")
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# Rate limiting (simple in-memory implementation)
rate_limit_store = defaultdict(list)
RATE_LIMIT_REQUESTS = settings.rate_limit_requests  # requests per window
RATE_LIMIT_WINDOW = settings.rate_limit_window_seconds  # seconds

def _prune_rate_limit_store(now: float) -> None:
    # Forget clients whose most recent request fell out of the window
    stale = [ip for ip, times in rate_limit_store.items() if not times or now - times[-1] >= RATE_LIMIT_WINDOW]
    for ip in stale:
        del rate_limit_store[ip]

def check_rate_limit(client_ip: str) -> bool:
    """Simple rate limiting check"""
    now = time.time()
    _prune_rate_limit_store(now)
    # Clean old requests
    rate_limit_store[client_ip] = [
        req_time for req_time in rate_limit_store[client_ip]
        if now - req_time < RATE_LIMIT_WINDOW
    ]

    if len(rate_limit_store[client_ip]) >= RATE_LIMIT_REQUESTS:
        return False

    rate_limit_store[client_ip].append(now)
    return True

def validate_image_bytes(data: bytes) -> bool:
    """Validate that the upload decodes as an image"""
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.verify()
        return True
    except Exception:
        return False

def sanitize_filename(filename: str) -> str:
    """Sanitize filename to prevent path traversal"""
    # Remove any path separators and dangerous characters
    filename = re.sub(r'[<>:"/\\|?*]', '', filename)
    # Limit length
    filename = filename[:100]
    return filename


def _record_layout(pattern: str, result) -> None:
    LAYOUTS_COMPUTED.labels(pattern=pattern, degraded=str(result.degraded).lower()).inc()


def _render_to_bytes(
    result,
    contents: List[bytes],
    main_photo_index: int,
    fit: FitMode,
    background_color: str,
    output_format: OutputFormat,
    dpi: int,
) -> bytes:
    """Decode uploads, draw them into the layout and export the page (runs in a worker thread)."""
    images = [open_image(data) for data in contents]
    main_image = images[main_photo_index]
    side_images = [images[i] for i in side_photo_order(len(images), main_photo_index)]

    renderer = CollageRenderer(background_color=background_color, fit=fit)
    canvas = renderer.render(result, main_image, side_images, scale=dpi / settings.display_dpi)

    buffer = io.BytesIO()
    export_collage(canvas, buffer, output_format, dpi)
    return buffer.getvalue()


# API Endpoints

@app.get("/")
async def root():
    """Root endpoint with API information"""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "endpoints": {
            "grid_layout": "/api/layout/grid",
            "ring_layout": "/api/layout/ring",
            "render": "/api/collage/render",
            "health": "/health",
            "metrics": "/metrics"
        }
    }

@app.post("/api/layout/grid", response_model=LayoutResult)
async def grid_layout(payload: GridLayoutPayload):
    """Compute main + side rectangles for a frame layout"""
    request = LayoutRequest(
        page_width=payload.page_width,
        page_height=payload.page_height,
        gap=payload.gap,
        total_photo_count=payload.total_photo_count,
        main_photo_index=payload.main_photo_index,
    )
    result = compute_grid_layout(request, payload.options or GRID_OPTIONS)
    _record_layout(CollagePattern.GRID.value, result)
    return result

@app.post("/api/layout/ring", response_model=RingLayoutResult)
async def ring_layout(payload: RingLayoutPayload):
    """Compute hexagonal-ring or circular cell positions"""
    result = compute_ring_layout(
        payload.page_width,
        payload.page_height,
        payload.gap,
        payload.total_photo_count,
        pattern=payload.pattern,
    )
    _record_layout(payload.pattern.value, result)
    return result

@app.post("/api/collage/render")
async def render_collage(
    files: List[UploadFile] = File(...),
    main_photo_index: int = Form(default=0, ge=0),
    pattern: CollagePattern = Form(default=CollagePattern.GRID),
    fit: FitMode = Form(default=FitMode.COVER),
    dpi: int = Form(default=settings.default_export_dpi, ge=72, le=600),
    output_format: OutputFormat = Form(default=OutputFormat.PNG),
    background_color: str = Form(default="#FFFFFF"),
):
    """Lay out the uploaded photos on the configured page and return the rendered file"""

    logger.info(f"Incoming render request: {len(files)} files - Parameters: pattern={pattern.value}, main={main_photo_index}, fit={fit.value}, dpi={dpi}, format={output_format.value}, bg_color={background_color}")

    # Validate file count
    max_files = settings.max_photos if pattern == CollagePattern.GRID else min(settings.max_photos, RING_MAX_PHOTOS)
    if not files:
        raise HTTPException(status_code=400, detail="At least 1 image required")
    if len(files) > max_files:
        logger.warning(f"Render failed: too many files for {pattern.value} layout")
        raise HTTPException(status_code=400, detail=f"Maximum {max_files} images allowed for {pattern.value} layout")
    if main_photo_index >= len(files):
        raise HTTPException(status_code=400, detail=f"main_photo_index {main_photo_index} out of range for {len(files)} images")
    if not HEX_COLOR_RE.match(background_color):
        raise HTTPException(status_code=400, detail="Invalid hex color format - use #RRGGBB or #RRGGBBAA")

    # Guard the output canvas before decoding anything
    scale = dpi / settings.display_dpi
    output_pixels = int(round(PAGE_WIDTH_PX * scale)) * int(round(PAGE_HEIGHT_PX * scale))
    if output_pixels > MAX_CANVAS_PIXELS:
        raise HTTPException(status_code=400, detail=f"Canvas too large: {output_pixels} pixels exceeds limit {MAX_CANVAS_PIXELS}")

    contents = []
    total_size = 0
    for upload in files:
        safe_name = sanitize_filename(upload.filename or "upload")
        data = await upload.read()
        if len(data) > MAX_IMAGE_SIZE:
            raise HTTPException(status_code=400, detail=f"File {safe_name} exceeds {MAX_IMAGE_SIZE // (1024 * 1024)}MB limit")
        total_size += len(data)
        if total_size > MAX_TOTAL_SIZE:
            raise HTTPException(status_code=400, detail=f"Total upload size exceeds {MAX_TOTAL_SIZE // (1024 * 1024)}MB limit")
        if not validate_image_bytes(data):
            logger.warning(f"Rejected upload {safe_name}: not a valid image")
            raise HTTPException(status_code=400, detail=f"File {safe_name} is not a valid image")
        contents.append(data)

    if pattern == CollagePattern.GRID:
        result = compute_grid_layout(
            LayoutRequest(
                page_width=PAGE_WIDTH_PX,
                page_height=PAGE_HEIGHT_PX,
                gap=settings.gap_px,
                total_photo_count=len(contents),
                main_photo_index=main_photo_index,
            ),
            GRID_OPTIONS,
        )
    else:
        result = compute_ring_layout(
            PAGE_WIDTH_PX,
            PAGE_HEIGHT_PX,
            settings.gap_px,
            len(contents),
            pattern=RingPattern(pattern.value),
        )
    _record_layout(pattern.value, result)

    try:
        payload = await run_in_threadpool(
            _render_to_bytes, result, contents, main_photo_index, fit, background_color, output_format, dpi
        )
    except Exception as e:
        logger.error(f"Collage rendering failed: {e}")
        raise HTTPException(status_code=500, detail="Collage rendering failed")

    filename = f"collage_{pattern.value}_{uuid.uuid4().hex[:8]}.{FILE_EXTENSIONS[output_format]}"
    headers = {
        "Content-Disposition": f'attachment; filename="{filename}"',
        "X-Layout-Degraded": str(result.degraded).lower(),
    }
    if result.warnings:
        headers["X-Layout-Warnings"] = "; ".join(result.warnings)

    logger.info(f"Rendered {filename}: {len(payload)} bytes, degraded={result.degraded}")
    return Response(content=payload, media_type=MEDIA_TYPES[output_format], headers=headers)


def _log_json(event: str, **kwargs):
    try:
        record = {"event": event, **kwargs}
        logger.info(json.dumps(record, default=str))
    except (TypeError, ValueError):
        # Fallback to plain logging if JSON serialization fails
        logger.info(f"{event} | {kwargs}")


# Request logging + Request ID middleware
@app.middleware("http")
async def log_requests(request, call_next):
    # Correlation/Request ID
    req_id = request.headers.get("X-Request-ID") or request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    request.state.request_id = req_id

    # Client IP for rate limiting
    client_ip = request.client.host if request.client else "unknown"

    # Rate limit check
    if not check_rate_limit(client_ip):
        _log_json(
            "rate_limit_exceeded",
            request_id=req_id,
            method=request.method,
            path=request.url.path,
            client_ip=client_ip,
        )
        return JSONResponse(
            status_code=429,
            content={"error": "Rate limit exceeded. Please try again later.", "request_id": req_id}
        )

    start_time = datetime.now()
    _log_json(
        "request_start",
        request_id=req_id,
        method=request.method,
        path=request.url.path,
        client_ip=client_ip,
    )

    response = await call_next(request)
    elapsed = (datetime.now() - start_time).total_seconds()
    process_time_ms = elapsed * 1000

    # Add response headers
    response.headers["X-Request-ID"] = req_id
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    _log_json(
        "request_end",
        request_id=req_id,
        method=request.method,
        path=request.url.path,
        status_code=response.status_code,
        duration_ms=round(process_time_ms, 2),
        client_ip=client_ip,
    )

    # Prometheus metrics
    REQUEST_COUNT.labels(method=request.method, path=request.url.path, status=response.status_code).inc()
    REQUEST_LATENCY.labels(method=request.method, path=request.url.path).observe(elapsed)

    return response


@app.get("/metrics")
async def metrics():
    """Prometheus metrics endpoint."""
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

# Health check
@app.get("/health")
async def health_check():
    """Health check: runs a small layout through the solver"""
    try:
        sample = compute_grid_layout(
            LayoutRequest(page_width=PAGE_WIDTH_PX, page_height=PAGE_HEIGHT_PX, gap=settings.gap_px, total_photo_count=9),
            GRID_OPTIONS,
        )
        health_status = {
            "status": "healthy",
            "timestamp": datetime.now().isoformat(),
            "version": settings.app_version,
            "checks": {
                "layout": {
                    "page": f"{PAGE_WIDTH_PX}x{PAGE_HEIGHT_PX}",
                    "main_size": sample.configuration.main_size,
                    "cell_size": sample.configuration.cell_size,
                    "healthy": not sample.degraded
                },
                "dependencies": {
                    "pillow_version": PIL.__version__,
                    "healthy": True
                }
            }
        }

        # Determine overall health
        all_checks_healthy = all(
            check.get("healthy", False)
            for check in health_status["checks"].values()
        )

        if not all_checks_healthy:
            health_status["status"] = "unhealthy"
            logger.warning(f"Health check failed: {health_status['checks']}")

        return health_status

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return {
            "status": "unhealthy",
            "timestamp": datetime.now().isoformat(),
            "error": str(e)
        }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port)
