from fastapi import APIRouter

from stockflow.app.api.v1.endpoints.health import router as health_router
from stockflow.app.api.v1.endpoints.purchase_orders import router as purchase_orders_router
from stockflow.app.api.v1.endpoints.transfer_orders import router as transfer_orders_router
from stockflow.app.api.v1.endpoints.receive_orders import router as receive_orders_router
from stockflow.app.api.v1.endpoints.production import router as production_router
from stockflow.app.api.v1.endpoints.stock import router as stock_router
from stockflow.app.api.v1.endpoints.reports import router as reports_router

router = APIRouter()
router.include_router(health_router, tags=["health"])
router.include_router(purchase_orders_router, tags=["purchase_orders"])
router.include_router(transfer_orders_router, tags=["transfer_orders"])
router.include_router(receive_orders_router, tags=["receive_orders"])
router.include_router(production_router, tags=["production"])
router.include_router(stock_router, tags=["stock"])
router.include_router(reports_router, tags=["reports"])
