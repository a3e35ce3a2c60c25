import logging

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from merch_inventory.config import settings
from merch_inventory.routers import inventory, returns, transactions

logging.basicConfig(
    level=settings.log_level,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title=settings.app_title)

app.include_router(inventory.router)
app.include_router(returns.router)
app.include_router(transactions.router)


@app.get('/health')
def health() -> dict:
    return {'status': 'ok'}


@app.get('/robots.txt', response_class=PlainTextResponse)
def robots_txt() -> str:
    return 'User-agent: *\nDisallow: /\n'
