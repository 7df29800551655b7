from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from backend.db import get_db
from backend.schemas import ProfileCreate, ProfileRead
from backend.stores import SQLProfileStore

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


def _read(store: SQLProfileStore, profile_id: str) -> ProfileRead:
    profile = store.find_profile_by_id(profile_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Profile {profile_id} not found")
    data = {key: value for key, value in profile.items() if key != "id"}
    return ProfileRead(id=profile_id, data=data)


@router.post("", response_model=ProfileRead, status_code=status.HTTP_201_CREATED)
def save_profile(payload: ProfileCreate, db: Session = Depends(get_db)) -> ProfileRead:
    store = SQLProfileStore(db)
    profile_id = store.save_profile(payload.data, profile_id=payload.id)
    return _read(store, profile_id)


@router.get("/{profile_id}", response_model=ProfileRead)
def get_profile(profile_id: str, db: Session = Depends(get_db)) -> ProfileRead:
    return _read(SQLProfileStore(db), profile_id)
