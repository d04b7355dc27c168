"""Exceptions raised by the scheduling core.

Infeasible visits are reported as data (``FeasibilityResult``); these are
reserved for referential failures and invalid state changes.
"""


class SchedulingError(Exception):
    """Base exception for scheduling errors."""

    pass


class PatientNotFoundError(SchedulingError):
    """Referenced patient does not exist."""

    def __init__(self, patient_id: str):
        super().__init__(f"Patient not found: {patient_id}")
        self.patient_id = patient_id


class DoctorNotFoundError(SchedulingError):
    """Referenced doctor does not exist."""

    def __init__(self, doctor_id: str):
        super().__init__(f"Doctor not found: {doctor_id}")
        self.doctor_id = doctor_id


class AppointmentNotFoundError(SchedulingError):
    """Referenced appointment does not exist."""

    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment not found: {appointment_id}")
        self.appointment_id = appointment_id


class InvalidStatusTransitionError(SchedulingError):
    """Requested status change is not allowed from the current status."""

    pass


class OracleUnavailableError(SchedulingError):
    """Routing service could not be reached or returned an unusable body.

    Internal to the travel client; converted to the fallback policy.
    """

    pass
