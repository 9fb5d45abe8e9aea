"""DLVR API routers.

- delivery: send, lifecycle events, receipts, bulk (/dlvr/v1)
- service: service of process (/dlvr/v1)
- public: receipt verification and delivery tracking
- meta: service status (/api/v1)
"""

from dlvr.api.routers.delivery import router as delivery_router
from dlvr.api.routers.meta import router as meta_router
from dlvr.api.routers.public import router as public_router
from dlvr.api.routers.service import router as service_router

__all__ = [
    "delivery_router",
    "meta_router",
    "public_router",
    "service_router",
]
