"""
medcore-appointments: Numbered appointments with a validated status timeline.

Provides:
- Appointment: APT-numbered booking embedding its timeline
- create/confirm/check_in/start/complete/cancel/no_show/reschedule services
- request_payment(): ties a payment to the appointment timeline
"""

__version__ = "0.1.0"
