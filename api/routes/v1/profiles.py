"""
api/routes/v1/profiles.py -- Profile and vital-reading REST endpoints.

Routes (all require a Bearer access token):
  GET    /api/v1/profiles                  -- caller's profiles
  POST   /api/v1/profiles                  -- create a profile; 201
  GET    /api/v1/profiles/{id}             -- one profile
  DELETE /api/v1/profiles/{id}             -- delete a profile and its vitals; 204
  GET    /api/v1/profiles/{id}/vitals      -- paginated readings, newest first
  POST   /api/v1/profiles/{id}/vitals      -- record a reading; 201

Ownership gate: require_owned_profile() resolves {id} through
ProfileStore.get_profile(account_id, id). Unknown ids and ids owned by
another account both raise ProfileNotFound (404), so the response never
confirms that someone else's profile exists.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    PageMeta,
    ProfileCreate,
    ProfileListResponse,
    ProfileResponse,
    VitalCreate,
    VitalListResponse,
    VitalResponse,
    VitalTypeEnum,
)
from auth.dependencies import get_current_account_id
from auth.errors import ProfileNotFound
from profiles.models import Profile, VitalEntry
from profiles.store import ProfileStore

# The router-level dependency runs before body validation, so an
# unauthenticated request is always 401 regardless of payload.
router = APIRouter(dependencies=[Depends(get_current_account_id)])


def get_profile_store(request: Request) -> ProfileStore:
    return request.app.state.profiles


def require_owned_profile(
    profile_id: str,
    account_id: str = Depends(get_current_account_id),
    store: ProfileStore = Depends(get_profile_store),
) -> Profile:
    """Return the path's profile if the caller owns it, else raise ProfileNotFound."""
    profile = store.get_profile(account_id, profile_id)
    if profile is None:
        raise ProfileNotFound()
    return profile


# ---------------------------------------------------------------------------
# Profiles
# ---------------------------------------------------------------------------


@router.get("/profiles", response_model=ProfileListResponse)
def list_profiles(
    account_id: str = Depends(get_current_account_id),
    store: ProfileStore = Depends(get_profile_store),
) -> ProfileListResponse:
    return ProfileListResponse(items=[ProfileResponse.from_profile(p) for p in store.list_profiles(account_id)])


@router.post("/profiles", response_model=ProfileResponse, status_code=201)
def create_profile(
    body: ProfileCreate,
    account_id: str = Depends(get_current_account_id),
    store: ProfileStore = Depends(get_profile_store),
) -> ProfileResponse:
    profile = store.create_profile(
        Profile(
            account_id=account_id,
            full_name=body.full_name,
            date_of_birth=body.date_of_birth,
            relation_to_account=body.relation_to_account,
        )
    )
    return ProfileResponse.from_profile(profile)


@router.get("/profiles/{profile_id}", response_model=ProfileResponse)
def get_profile(profile: Profile = Depends(require_owned_profile)) -> ProfileResponse:
    return ProfileResponse.from_profile(profile)


@router.delete("/profiles/{profile_id}", status_code=204)
def delete_profile(
    profile: Profile = Depends(require_owned_profile),
    store: ProfileStore = Depends(get_profile_store),
) -> Response:
    if not store.delete_profile(profile.account_id, profile.id):
        # Deleted by a concurrent request between the gate and here
        raise ProfileNotFound()
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Vitals
# ---------------------------------------------------------------------------


@router.get("/profiles/{profile_id}/vitals", response_model=VitalListResponse)
def list_vitals(
    profile: Profile = Depends(require_owned_profile),
    store: ProfileStore = Depends(get_profile_store),
    type: Optional[VitalTypeEnum] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
) -> VitalListResponse:
    """Return one page of the profile's readings, newest recordedAt first."""
    items, total = store.list_vitals(
        profile.id,
        vital_type=type.value if type else None,
        page=page,
        limit=limit,
    )
    return VitalListResponse(
        items=[VitalResponse.from_vital(v) for v in items],
        meta=PageMeta(page=page, limit=limit, total=total),
    )


@router.post("/profiles/{profile_id}/vitals", response_model=VitalResponse, status_code=201)
def add_vital(
    body: VitalCreate,
    profile: Profile = Depends(require_owned_profile),
    store: ProfileStore = Depends(get_profile_store),
) -> VitalResponse:
    vital = store.add_vital(
        VitalEntry(
            profile_id=profile.id,
            type=body.type.value,
            value=body.stored_value(),
            unit=body.unit,
            recorded_at=body.recorded_at,
        )
    )
    return VitalResponse.from_vital(vital)
