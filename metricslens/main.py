from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
import uvicorn

from metricslens.config import settings
from metricslens.log_config_loader import setup_logging
from metricslens.router import router as explorer_router
from metricslens.services.explorer import Explorer

setup_logging(
    service_name=settings.SERVICE_NAME,
    level=settings.LOG_LEVEL,
    log_format=settings.LOG_FORMAT,
    version=settings.SERVICE_VERSION,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    explorer = Explorer.from_settings(settings)
    explorer.start()
    app.state.explorer = explorer
    logger.info('API started')
    try:
        yield
    finally:
        logger.info('Shutting down...')
        explorer.close()
        logger.info('Shutdown complete')


app = FastAPI(title='metricslens', version=settings.SERVICE_VERSION, lifespan=lifespan)


@app.get('/health')
async def health_check() -> dict[str, str]:
    logger.debug('Health check...')
    return {'status': 'ok'}


app.include_router(explorer_router)


def main() -> None:
    uvicorn.run(
        'metricslens.main:app',
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.API_RELOAD,
    )


if __name__ == '__main__':
    main()
