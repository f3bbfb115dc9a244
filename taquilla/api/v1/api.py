from fastapi import APIRouter
from taquilla.api.v1.routes.reservations import router as reservations_router
from taquilla.api.v1.routes.availability import router as availability_router
from taquilla.api.v1.routes.checkout import router as checkout_router
from taquilla.api.v1.routes.webhooks import router as webhooks_router
from taquilla.api.v1.routes.orders import router as orders_router

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(reservations_router)
api_router.include_router(availability_router)
api_router.include_router(checkout_router)
api_router.include_router(webhooks_router)
api_router.include_router(orders_router)
