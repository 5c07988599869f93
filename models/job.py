from sqlmodel import SQLModel, Field
from typing import Optional

# Job Site w/ Circular Geofence

class Job(SQLModel, table=True):
    __tablename__ = "jobs"

    id: str = Field(primary_key=True, description="Unique job identifier")
    name: Optional[str] = Field(default=None, description="Human-friendly site name")
    # Nullable so half-configured sites can exist; the tracker rejects them
    latitude: Optional[float] = Field(default=None, description="Latitude of site center")
    longitude: Optional[float] = Field(default=None, description="Longitude of site center")
    geofence_radius: Optional[float] = Field(default=None, description="Geofence radius in meters")
    geofence_enabled: bool = Field(default=True, description="Run exit detection for this site")
