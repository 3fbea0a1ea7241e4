from fastapi import APIRouter
from app.api.v1.endpoints import forms, submissions, webhook, auth

api_router = APIRouter()

api_router.include_router(forms.router, prefix="/forms", tags=["forms"])
api_router.include_router(submissions.router, prefix="/forms", tags=["submissions"])
api_router.include_router(webhook.router, prefix="/webhook", tags=["webhook"])
api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
