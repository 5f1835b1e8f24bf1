"""API routes."""

from fastapi import APIRouter

from tablequeue.api.routes import (
    admin,
    auth,
    menu,
    org,
    orders,
    payments,
    public,
    queues,
    reservations,
    reviews,
    tables,
    users,
    waiter_calls,
)

api_router = APIRouter()

# Customer-facing (no auth)
api_router.include_router(public.router, prefix="/public", tags=["public"])

# Staff
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(orders.router, prefix="/orders", tags=["orders"])
api_router.include_router(payments.router, tags=["payments", "split-bill"])
api_router.include_router(tables.router, prefix="/tables", tags=["tables"])
api_router.include_router(menu.router, prefix="/menu", tags=["menu"])
api_router.include_router(queues.router, prefix="/queues", tags=["queues"])
api_router.include_router(waiter_calls.router, prefix="/waiter-calls", tags=["waiter-calls"])
api_router.include_router(reservations.router, prefix="/reservations", tags=["reservations"])
api_router.include_router(reviews.router, prefix="/reviews", tags=["reviews"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
api_router.include_router(org.router, prefix="/org", tags=["organization"])
api_router.include_router(admin.router, prefix="/admin", tags=["super-admin"])
