"""Background tasks for application maintenance."""
from rankmatch.tasks.reservation_maintenance import run_reservation_maintenance, schedule_periodic_maintenance

__all__ = ['run_reservation_maintenance', 'schedule_periodic_maintenance']
