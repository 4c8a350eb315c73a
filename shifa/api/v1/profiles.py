"""Triage profile endpoints."""

import logging

from fastapi import APIRouter, status

from shifa.api.deps import Store
from shifa.core.exceptions import ConfigError
from shifa.schemas.triage import ProfileRead

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "",
    response_model=list[ProfileRead],
    status_code=status.HTTP_200_OK,
    summary="List triage profiles",
    description="Configured profiles with ruleset version and hash",
)
async def list_profiles(store: Store) -> list[ProfileRead]:
    """List configured triage profiles.

    Profiles whose ruleset cannot be read are left out.
    """
    profiles = []
    for name, filename in store.loader.profiles.items():
        try:
            info = store.loader.get_ruleset_info(filename)
        except ConfigError as exc:
            logger.warning(f"Profile '{name}' unavailable: {exc}")
            continue
        profiles.append(ProfileRead(name=name, **info))
    return profiles
