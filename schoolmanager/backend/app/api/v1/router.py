from fastapi import APIRouter, Depends

from app.api.v1 import admins, billing, members, plans, staff, tenants
from app.middleware.rate_limit import rate_limit

api_router = APIRouter()

api_router.include_router(tenants.router, prefix="/tenants", tags=["tenants"], dependencies=[Depends(rate_limit)])
api_router.include_router(plans.router, prefix="/plans", tags=["plans"], dependencies=[Depends(rate_limit)])
api_router.include_router(admins.router, prefix="/admins", tags=["admins"], dependencies=[Depends(rate_limit)])
api_router.include_router(staff.router, prefix="/staff", tags=["staff"], dependencies=[Depends(rate_limit)])
api_router.include_router(members.router, prefix="/members", tags=["members"], dependencies=[Depends(rate_limit)])
# Webhook route must stay unthrottled; authenticated billing routes add their own limit
api_router.include_router(billing.router, prefix="/billing", tags=["billing"])
