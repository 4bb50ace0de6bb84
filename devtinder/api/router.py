"""
DevTinder — Main API Router

Aggregates all sub-routers under a single prefix so that
``devtinder.main`` can mount the entire API surface with one
``include_router`` call.
"""

from fastapi import APIRouter

from devtinder.api import matches, messages, users

router = APIRouter()

router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(messages.router, prefix="/messages", tags=["Messages"])
