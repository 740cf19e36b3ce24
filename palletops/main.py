import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from palletops.config import settings
from palletops.routers import billing, events, inventory, receiving, shipping

logging.basicConfig(
    level=settings.log_level.upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='PalletOps')

app.include_router(receiving.router)
app.include_router(shipping.router)
app.include_router(inventory.router)
app.include_router(billing.router)
app.include_router(events.router)


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={'detail': str(exc)})


@app.get('/health')
def health() -> dict[str, str]:
    return {'status': 'ok', 'warehouse': settings.warehouse_code}
