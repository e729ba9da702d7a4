import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pythonjsonlogger import jsonlogger
from redis.exceptions import RedisError

from .core import init_metrics, redis_startup, shutdown_connections
from .errors import AppError, InternalError, NotFound, StoreInconsistency
from .file_storage import MEDIA_ROOT, MEDIA_URL
from .routes import router

# setup structured logging
logger = logging.getLogger('photolog')
handler = logging.StreamHandler()
formatter = jsonlogger.JsonFormatter('%(asctime)s %(levelname)s %(name)s %(message)s')
handler.setFormatter(formatter)
logger.addHandler(handler)
logger.setLevel(logging.INFO)

app = FastAPI(title="Photolog", version="0.1.0")


@app.get('/healthz')
async def healthz():
    return {'status': 'ok'}


app.mount(MEDIA_URL, StaticFiles(directory=MEDIA_ROOT), name='media')
app.include_router(router)


@app.middleware('http')
async def log_requests(request: Request, call_next):
    logger.info({'msg': 'request_start', 'method': request.method, 'path': request.url.path})
    response = await call_next(request)
    logger.info({'msg': 'request_end', 'status': response.status_code})
    return response


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if isinstance(exc, StoreInconsistency):
        logger.critical({'msg': 'store_inconsistency', 'path': request.url.path}, exc_info=exc)
    elif isinstance(exc, InternalError):
        logger.error({'msg': 'internal_error', 'path': request.url.path}, exc_info=exc)
    elif not isinstance(exc, NotFound):
        logger.info({'msg': 'request_rejected', 'path': request.url.path, 'error': type(exc).__name__})
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.detail})


@app.exception_handler(RedisError)
async def redis_error_handler(request: Request, exc: RedisError):
    # Store failures surface as a generic internal error
    logger.error({'msg': 'store_error', 'path': request.url.path}, exc_info=exc)
    return JSONResponse(status_code=InternalError.status_code, content={'detail': InternalError.detail})


@app.on_event("startup")
async def startup():
    # Best-effort init, don't block app from starting if a dependency fails
    try:
        await redis_startup()
    except Exception as e:
        logger.warning({'msg': 'redis_start_failed', 'error': str(e)})
    try:
        init_metrics()
    except Exception as e:
        logger.warning({'msg': 'metrics_init_failed', 'error': str(e)})


@app.on_event("shutdown")
async def shutdown():
    await shutdown_connections()
