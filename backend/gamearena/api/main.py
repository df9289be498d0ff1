from fastapi import APIRouter

from gamearena.api.routes import (
    admin,
    creator,
    entities,
    functions,
    login,
    moderator,
    notifications,
    registrations,
    tournaments,
    uploads,
    users,
    utils,
    wallet,
)

api_router = APIRouter()
api_router.include_router(login.router)
api_router.include_router(users.router)
api_router.include_router(utils.router)
api_router.include_router(entities.router)
api_router.include_router(uploads.router)
api_router.include_router(functions.router)
api_router.include_router(registrations.router)
api_router.include_router(tournaments.router)
api_router.include_router(moderator.router)
api_router.include_router(creator.router)
api_router.include_router(wallet.router)
api_router.include_router(notifications.router)
api_router.include_router(admin.router)
