"""Patient location resolution."""

import logging
from typing import Optional

from homevisit.scheduling.models import GeoLocation
from homevisit.scheduling.repository import ScheduleRepository

logger = logging.getLogger(__name__)


class LocationResolver:
    """Maps a patient id to a geocoordinate and address.

    Unknown patients, patients without coordinates and lookup failures all
    resolve to ``default_location``; resolution never raises.
    """

    def __init__(
        self,
        repository: ScheduleRepository,
        default_location: Optional[GeoLocation] = None,
    ):
        self.repository = repository
        self.default_location = default_location or GeoLocation(
            latitude=24.137, longitude=120.686, address="Unknown address"
        )

    @classmethod
    def from_settings(cls, repository: ScheduleRepository, settings=None) -> "LocationResolver":
        if settings is None:
            from homevisit.config import get_settings

            settings = get_settings()
        return cls(
            repository,
            GeoLocation(
                latitude=settings.default_latitude,
                longitude=settings.default_longitude,
                address=settings.default_address,
            ),
        )

    async def resolve(self, patient_id: str, address_override: Optional[str] = None) -> GeoLocation:
        """Resolve a patient's visit location.

        Args:
            patient_id: Patient identifier
            address_override: Free-text address to record instead of the stored one

        Returns:
            A new GeoLocation (never shared with the repository)
        """
        try:
            patient = await self.repository.get_patient(patient_id)
        except Exception as e:
            logger.warning(f"Location lookup failed for patient {patient_id}: {e}")
            patient = None

        if patient and patient.location and patient.location.has_coordinates:
            location = patient.location.model_copy()
        else:
            logger.info(f"No coordinates for patient {patient_id}; using default location")
            location = self.default_location.model_copy()

        if address_override:
            location.address = address_override
        return location
