from .clock_entry import AutoClockoutType, ClockEntry
from .geofence_event import GeofenceEvent, GeofenceEventType
from .job import Job
from .notification import Notification, NotificationLog, NotificationPreference
from .worker import Worker
