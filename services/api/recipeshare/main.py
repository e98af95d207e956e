# recipeshare API Main Entry Point
import logging
import sys

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

from .errors import RecipeShareError
from .settings import settings
from .routers.ready import router as ready_router
from .routers.households import router as households_router
from .routers.collections import router as collections_router
from .routers.recipes import router as recipes_router
from .routers.plan import router as plan_router
from .routers.shop import router as shop_router
from .routers.admin import router as admin_router

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)
logger = logging.getLogger("recipeshare")

# Rate limiter (per-IP)
limiter = Limiter(key_func=get_remote_address, default_limits=[settings.rate_limit_default])

app = FastAPI(title="recipeshare API", version="0.1.0")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(RecipeShareError)
async def recipeshare_error_handler(request: Request, exc: RecipeShareError):
    if exc.http_status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(ready_router, prefix="/api", tags=["ready"])
app.include_router(households_router, prefix="/api", tags=["households"])
app.include_router(collections_router, prefix="/api", tags=["collections"])
app.include_router(recipes_router, prefix="/api", tags=["recipes"])
app.include_router(plan_router, prefix="/api", tags=["plan"])
app.include_router(shop_router, prefix="/api", tags=["shop"])
app.include_router(admin_router, prefix="/api", tags=["admin"])
