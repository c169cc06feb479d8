#!/usr/bin/env python3
from fastapi import FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse, Response
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
import logging, os, pathlib, sys
sys.path.append(str(pathlib.Path(__file__).resolve().parents[2]))
from shared.config import Settings
from shared.errors import PipelineError, SourceError
from shared.memory_guard import MemoryMonitor
from shared.payload_generator import write_payload_files
from shared.pipelines import PipelineResult, process_buffered, process_stream_async

app = FastAPI(title="gzip JSON scan")
logger = logging.getLogger(__name__)
settings = Settings.from_env()

DEFAULT_GENERATE_SIZE = 10000

request_counter = Counter("payload_requests_total", "Total payload uploads", ["pipeline"])
failure_counter = Counter("payload_failures_total", "Failed payload uploads", ["pipeline", "error"])
items_counter = Counter("payload_items_total", "Approximate records counted", ["pipeline"])
process_duration = Histogram("payload_process_seconds", "Time spent processing", ["pipeline"])


class PayloadTooLarge(Exception):
    pass


def _failure(pipeline: str, exc: Exception) -> JSONResponse:
    kind = getattr(exc, "kind", type(exc).__name__)
    failure_counter.labels(pipeline=pipeline, error=kind).inc()
    logger.error(f"{pipeline} processing error: {exc}")
    return JSONResponse({"error": "processing failed", "message": str(exc)}, status_code=500)


def _observe(pipeline: str, result: PipelineResult):
    process_duration.labels(pipeline=pipeline).observe(result.elapsed_millis / 1000)
    items_counter.labels(pipeline=pipeline).inc(result.item_count)


async def _read_body(request: Request, limit: int) -> bytes:
    chunks = []
    total = 0
    try:
        async for chunk in request.stream():
            total += len(chunk)
            if total > limit:
                raise PayloadTooLarge(f"request body exceeds {limit} bytes")
            chunks.append(chunk)
    except PayloadTooLarge:
        raise
    except Exception as e:
        raise SourceError(f"request body failed: {e}") from e
    return b"".join(chunks)


@app.get("/health", tags=["ops"])
def health():
    return {"status": "healthy"}

@app.get("/metrics", tags=["ops"])
def metrics():
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

@app.get("/generate", tags=["data"])
async def generate(size: str = None, decoys: str = None):
    try:
        records = int(size)
    except (TypeError, ValueError):
        records = DEFAULT_GENERATE_SIZE
    if records <= 0:
        records = DEFAULT_GENERATE_SIZE
    try:
        decoy_count = max(0, int(decoys))
    except (TypeError, ValueError):
        decoy_count = 0
    files = await write_payload_files(settings.data_dir, records, decoy_count)
    return {"status": "ok", "message": "test data generated", "files": files}

@app.post("/bad", tags=["process"])
async def process_bad(request: Request):
    """Buffer the whole body, then decompress and scan it."""
    request_counter.labels(pipeline="buffered").inc()
    monitor = MemoryMonitor(settings.memory_log_interval)
    try:
        body = await _read_body(request, settings.max_body_size)
        result = await run_in_threadpool(process_buffered, body, settings, monitor)
    except PayloadTooLarge as e:
        failure_counter.labels(pipeline="buffered", error="too_large").inc()
        return JSONResponse({"error": "payload too large", "message": str(e)}, status_code=413)
    except PipelineError as e:
        return _failure("buffered", e)
    _observe("buffered", result)
    return {
        "status": "ok",
        "processTime": result.process_time,
        "originalSize": result.compressed_bytes,
        "unzippedSize": result.processed_bytes,
        "approximateItems": result.item_count,
    }

@app.post("/good", tags=["process"])
async def process_good(request: Request):
    """Decompress and scan the body while it is still arriving."""
    request_counter.labels(pipeline="streaming").inc()
    monitor = MemoryMonitor(settings.memory_log_interval)
    try:
        result = await process_stream_async(request.stream(), settings, monitor)
    except PipelineError as e:
        return _failure("streaming", e)
    _observe("streaming", result)
    return {
        "status": "ok",
        "processTime": result.process_time,
        "processedBytes": result.processed_bytes,
        "approximateItems": result.item_count,
    }

def usage(port: int) -> str:
    base = f"http://localhost:{port}"
    return "\n".join([
        f"server running: {base}",
        "1. generate test data:",
        f'   curl "{base}/generate?size=10000"',
        "2. buffered (anti-pattern):",
        f"   curl -X POST -H \"Content-Type: application/octet-stream\" --data-binary @{settings.data_dir}/test.json.gz {base}/bad",
        "3. streaming:",
        f"   curl -X POST -H \"Content-Type: application/octet-stream\" --data-binary @{settings.data_dir}/test.json.gz {base}/good",
    ])

if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.DEBUG if settings.debug else logging.INFO)
    port = int(os.environ.get("PORT", settings.port))
    logger.info(usage(port))
    uvicorn.run(app, host="0.0.0.0", port=port)
