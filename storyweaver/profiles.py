from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional

from .exceptions import NotFoundError, StorageError, ValidationError
from .models import (
    Profile,
    new_id,
    utc_now,
    validate_age,
    validate_name,
    validate_reading_level,
    validate_themes,
    validate_voice,
)
from .storage import PROFILE_STORAGE_KEY, JsonCollection

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {
    "name": validate_name,
    "age": validate_age,
    "reading_level": validate_reading_level,
    "preferred_themes": validate_themes,
    "voice": validate_voice,
}


class ProfileStore:
    """Reader profiles kept in their own JSON collection."""

    def __init__(self, collection: Optional[JsonCollection] = None, base_dir: Optional[Path] = None):
        self.collection = collection or JsonCollection.named(PROFILE_STORAGE_KEY, base_dir)

    def list(self) -> List[Profile]:
        """All saved profiles in storage order.

        Never raises: unreadable storage is logged and treated as no profiles,
        and individual malformed records are skipped.
        """
        profiles = []
        for record in self.collection.read():
            try:
                profiles.append(Profile.from_dict(record))
            except (KeyError, TypeError, AttributeError) as e:
                logger.warning("Skipping malformed profile record in %s: %s", self.collection.path, e)
        return profiles

    def get(self, profile_id: str) -> Profile:
        for profile in self.list():
            if profile.id == profile_id:
                return profile
        raise NotFoundError("Profile", profile_id)

    def create(
        self,
        name: str,
        age: int,
        reading_level: int,
        preferred_themes: Optional[Iterable[str]] = None,
        voice: Optional[str] = None,
    ) -> Profile:
        now = utc_now()
        profile = Profile(
            id=new_id(),
            name=validate_name(name),
            age=validate_age(age),
            reading_level=validate_reading_level(reading_level),
            preferred_themes=validate_themes(preferred_themes),
            voice=validate_voice(voice),
            created_at=now,
            updated_at=now,
        )
        with self.collection.lock:
            records = self.collection.read_strict()
            records.append(profile.to_dict())
            self.collection.write(records)
        logger.info("Created profile %s (%s)", profile.name, profile.id)
        return profile

    def update(self, profile_id: str, **fields: Any) -> Optional[Profile]:
        """Merge ``fields`` into a profile.

        Returns the updated profile, or None when no profile has ``profile_id``.
        """
        unknown = set(fields).difference(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot edit profile field(s): {', '.join(sorted(unknown))}")
        changes = {name: EDITABLE_FIELDS[name](value) for name, value in fields.items()}

        with self.collection.lock:
            records = self.collection.read_strict()
            for index, record in enumerate(records):
                if record.get("id") == profile_id:
                    break
            else:
                logger.info("Profile %s not found; nothing to update", profile_id)
                return None

            try:
                profile = Profile.from_dict({**record, **changes, "updated_at": utc_now()})
            except (KeyError, TypeError, AttributeError) as e:
                raise StorageError(str(self.collection.path), f"malformed profile record: {e}") from e
            records[index] = profile.to_dict()
            self.collection.write(records)
        return profile

    def delete(self, profile_id: str) -> bool:
        """Remove a profile. Stories that reference it are left untouched."""
        with self.collection.lock:
            records = self.collection.read_strict()
            remaining = [r for r in records if r.get("id") != profile_id]
            if len(remaining) == len(records):
                return False
            self.collection.write(remaining)
        logger.info("Deleted profile %s", profile_id)
        return True
